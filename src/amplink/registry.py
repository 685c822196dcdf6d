"""
The amplifiers a user has saved, so that they can be switched to or assigned by address.
"""
import time

from amplink.address import DeviceAddress
from amplink.support.mixins import CommonEqualityMixin, StringerMixin


class RegistryError(ValueError):
    """ A request to the registry that cannot be carried out. """


class DuplicateDeviceError(RegistryError):
    pass


class UnknownDeviceError(RegistryError):
    pass


class SavedDevice(CommonEqualityMixin, StringerMixin):
    def __init__(self, address: DeviceAddress, name=None, added_at=None):
        self.address = address
        self.name = name or str(address)
        self.added_at = added_at if added_at is not None else time.time()

    def to_dict(self):
        return {'address': self.address.key, 'name': self.name, 'addedAt': self.added_at}

    @classmethod
    def from_dict(cls, values):
        return cls(DeviceAddress.parse(values['address']), values.get('name'), values.get('addedAt'))


class DeviceRegistry:
    """ Saved devices in the order they were added. Each address is saved at most once. """

    def __init__(self, devices=()):
        self._devices = {}
        for device in devices:
            self._put(device)

    def add(self, address, name=None):
        """
        saves a device.
        :raises InvalidAddressError: the address cannot be parsed
        :raises DuplicateDeviceError: the address is already saved
        """
        return self._put(SavedDevice(DeviceAddress.parse(address), name))

    def remove(self, address):
        address = DeviceAddress.parse(address)
        if address not in self._devices:
            raise UnknownDeviceError("%s is not a saved device" % address)
        return self._devices.pop(address)

    def get(self, address):
        return self._devices.get(DeviceAddress.parse(address))

    def devices(self):
        return list(self._devices.values())

    def __contains__(self, address):
        return self.get(address) is not None

    def __len__(self):
        return len(self._devices)

    def require(self, address):
        """ the saved device for the address. Raises UnknownDeviceError when it is not saved. """
        device = self.get(address)
        if device is None:
            raise UnknownDeviceError("%s is not a saved device" % DeviceAddress.parse(address))
        return device

    def _put(self, device: SavedDevice):
        if device.address in self._devices:
            raise DuplicateDeviceError("%s is already saved" % device.address)
        self._devices[device.address] = device
        return device

    def to_list(self):
        return [device.to_dict() for device in self._devices.values()]

    @classmethod
    def from_list(cls, values):
        return cls(SavedDevice.from_dict(v) for v in values or ())
