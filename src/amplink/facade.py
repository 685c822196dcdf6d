"""
The control API offered to the outer layers. Each operation returns a CommandResult rather than
raising, so that callers can pass the outcome straight back to the user.
"""
import functools
import logging

from amplink.address import DeviceAddress
from amplink.channels import DisplayChannel
from amplink.connector.base import ConnectorError
from amplink.registry import DeviceRegistry
from amplink.router import ChannelRouter
from amplink.store import JsonStore
from amplink.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)


class CommandResult(CommonEqualityMixin, StringerMixin):
    """
    :param success: whether the operation was carried out
    :param message: describes the outcome to the user
    :param value: the value requested by a query operation
    """

    def __init__(self, success, message, value=None):
        self.success = success
        self.message = message
        self.value = value

    def __bool__(self):
        return bool(self.success)

    @classmethod
    def ok(cls, message, value=None):
        return cls(True, message, value)

    @classmethod
    def failed(cls, message):
        return cls(False, message)


def _handles_errors(fn):
    """ turns the errors callers can cause into failed results. """
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except (ValueError, ConnectorError, IOError) as e:
            self.logger.debug("%s failed: %s" % (fn.__name__, e))
            return CommandResult.failed(str(e))
    return wrapper


class ControlApi:
    """
    :param router: the router that monitors the amplifiers
    :param registry: the saved devices
    :param store: when given, assignments and saved devices are saved after each change
    """

    def __init__(self, router: ChannelRouter, registry: DeviceRegistry=None, store: JsonStore=None, log=logger):
        self.router = router
        self.registry = registry if registry is not None else DeviceRegistry()
        self.store = store
        self.logger = log

    @classmethod
    def load(cls, store: JsonStore, **router_args):
        """ creates the api with a new router, from the assignments and devices saved in the store. """
        table, registry = store.load()
        return cls(ChannelRouter(table, **router_args), registry, store)

    @_handles_errors
    def connect(self, address):
        """ starts monitoring with the address as the default amplifier. The address need not be saved. """
        address = DeviceAddress.parse(address)
        self.router.connect(address)
        return CommandResult.ok("Connected to %s" % self._name(address))

    @_handles_errors
    def disconnect(self):
        self.router.disconnect()
        return CommandResult.ok("Disconnected")

    @_handles_errors
    def switch(self, address):
        """ makes a saved device the default amplifier. """
        device = self.registry.require(address)
        self.router.connect(device.address)
        return CommandResult.ok("Switched to %s" % device.name, device.address)

    @_handles_errors
    def set_assignment(self, display, address=None):
        """ assigns a display channel to a saved device, or to the default amplifier when address is empty. """
        display = DisplayChannel.parse(display)
        if address:
            address = self.registry.require(address).address
            target = self._name(address)
        else:
            address, target = None, "the default amplifier"
        self.router.set_assignment(display, address)
        return self._saved("%s assigned to %s" % (display, target))

    @_handles_errors
    def set_channel_number(self, display, number=None):
        display = DisplayChannel.parse(display)
        number = int(number) if number is not None and number != '' else None
        self.router.set_channel_number(display, number)
        target = "channel %d" % number if number is not None else "its own channel"
        return self._saved("%s reads %s" % (display, target))

    @_handles_errors
    def bulk_assign(self, address):
        """ assigns every display channel to a saved device. """
        device = self.registry.require(address)
        self.router.assign_all(device.address)
        return self._saved("All channels assigned to %s" % device.name)

    @_handles_errors
    def set_mute(self, kind, channel_id, mute):
        """ queues a mute command. The result reports that it was sent, not that the amplifier applied it. """
        self.router.set_mute(kind, channel_id, mute)
        target = kind if kind == 'all-output' else "%s %s" % (kind, channel_id)
        return CommandResult.ok("%s %s" % ("Muted" if mute else "Unmuted", target))

    @_handles_errors
    def add_device(self, address, name=None):
        device = self.registry.add(address, name)
        return self._saved("Added %s" % device.name, device)

    @_handles_errors
    def remove_device(self, address):
        """ forgets a saved device. Removing the default amplifier stops monitoring. """
        device = self.registry.remove(address)
        if device.address == self.router.default_address:
            self.router.disconnect()
        return self._saved("Removed %s" % device.name, device)

    def devices(self):
        return CommandResult.ok("%d saved devices" % len(self.registry), self.registry.devices())

    def status(self):
        status = self.router.status()
        if status.address is None:
            message = "Not connected"
        elif status.connected:
            message = "Connected to %s" % self._name(status.address)
        else:
            message = "Connecting to %s" % self._name(status.address)
        return CommandResult.ok(message, status)

    def _name(self, address):
        device = self.registry.get(address)
        return device.name if device is not None else str(address)

    def _saved(self, message, value=None):
        if self.store is not None:
            try:
                self.store.save(self.router.table, self.registry)
            except OSError as e:
                self.logger.warning("unable to save to %s: %s" % (self.store.path, e))
                return CommandResult.failed("%s, but saving failed: %s" % (message, e))
        return CommandResult.ok(message, value)
