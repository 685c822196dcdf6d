import ipaddress

from amplink import settings
from amplink.support.mixins import ValueObjectMixin


class InvalidAddressError(ValueError):
    """ A device address that is not an IP address literal, optionally followed by a port. """


class DeviceAddress(ValueObjectMixin):
    """
    The network endpoint of an amplifier. Sessions are keyed by address.
    """

    def __init__(self, host, port=None):
        self.host = host
        self.port = port if port is not None else settings.port

    @property
    def key(self):
        return "%s:%d" % (self.host, self.port)

    def __str__(self):
        return self.key

    def __repr__(self):
        return "DeviceAddress(%r, %d)" % (self.host, self.port)

    @classmethod
    def parse(cls, text):
        """
        Parses an address in the form ``host`` or ``host:port``. The host must be an IPv4 or IPv6
        address literal; an IPv6 address with a port is written ``[host]:port``.

        >>> DeviceAddress.parse('192.168.1.20:9000').key
        '192.168.1.20:9000'
        """
        if isinstance(text, DeviceAddress):
            return text
        text = (text or '').strip()
        host, port = text, None
        if text.startswith('['):
            host, sep, rest = text[1:].partition(']')
            if not sep or (rest and not rest.startswith(':')):
                raise InvalidAddressError("invalid address %r" % text)
            port = rest[1:] if rest else None
        elif text.count(':') == 1:
            host, port = text.split(':')
        try:
            host = str(ipaddress.ip_address(host))
        except ValueError as e:
            raise InvalidAddressError("invalid address %r" % text) from e
        if port is not None:
            if not port.isdigit() or not 0 < int(port) < 0x10000:
                raise InvalidAddressError("invalid port in address %r" % text)
            port = int(port)
        return cls(host, port)
