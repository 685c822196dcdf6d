"""
The display channels shown to users, and the table that assigns each of them to a physical
channel on an amplifier.
"""
from amplink.address import DeviceAddress
from amplink.protocol.frames import ChannelKind, CHANNELS, MASTER_CHANNEL, InvalidChannelError
from amplink.support.mixins import ValueObjectMixin, StringerMixin


class DisplayChannel(ValueObjectMixin):
    """ One of the 8 channel slots shown to users: inputs 1-4 and outputs 1-4. """

    def __init__(self, kind, index):
        self.kind = kind
        self.index = index

    @property
    def key(self):
        return "%s-%d" % (self.kind, self.index)

    def __str__(self):
        return self.key

    def __repr__(self):
        return "DisplayChannel(%r, %d)" % (self.kind, self.index)

    @classmethod
    def parse(cls, text):
        """
        >>> DisplayChannel.parse('output-3')
        DisplayChannel('output', 3)
        """
        if isinstance(text, DisplayChannel):
            return text
        kind, sep, index = str(text).rpartition('-')
        channel = cls(kind, int(index)) if sep and index.isdigit() else None
        if channel not in DISPLAY_CHANNELS:
            raise InvalidChannelError("invalid display channel %r" % (text,))
        return channel


DISPLAY_CHANNELS = tuple(DisplayChannel(kind, index) for kind in (ChannelKind.input, ChannelKind.output)
                         for index in CHANNELS)

# labels master mute samples from the default device
ALL_OUTPUT = DisplayChannel(ChannelKind.all_output, MASTER_CHANNEL)


class Route(ValueObjectMixin, StringerMixin):
    """ The physical channel on an amplifier that supplies a display channel. """

    def __init__(self, address: DeviceAddress, kind, channel):
        self.address = address
        self.kind = kind
        self.channel = channel


def validate_physical_channel(channel):
    if channel is not None and channel not in CHANNELS:
        raise InvalidChannelError("invalid physical channel %r" % (channel,))


class AssignmentTable:
    """
    Assigns display channels to amplifiers. A display channel without an address is supplied by the
    default amplifier. A display channel without a channel number uses the physical channel with the
    same index.
    """

    def __init__(self):
        self._addresses = {}
        self._numbers = {}

    def address(self, display: DisplayChannel):
        return self._addresses.get(display)

    def channel_number(self, display: DisplayChannel):
        return self._numbers.get(display)

    def assign(self, display, address=None):
        """ assigns the display channel to an address, or to the default amplifier when address is None. """
        display = DisplayChannel.parse(display)
        if address is None:
            self._addresses.pop(display, None)
        else:
            self._addresses[display] = DeviceAddress.parse(address)

    def set_channel_number(self, display, number=None):
        """ sets the physical channel for the display channel, or restores its own index when number is None. """
        display = DisplayChannel.parse(display)
        validate_physical_channel(number)
        if number is None:
            self._numbers.pop(display, None)
        else:
            self._numbers[display] = number

    def assign_all(self, address):
        """
        assigns every display channel to the address, or all to the default amplifier when None.
        Each display channel goes back to the physical channel with its own index.
        """
        address = DeviceAddress.parse(address) if address is not None else None
        for display in DISPLAY_CHANNELS:
            self.assign(display, address)
        self._numbers.clear()

    def addresses(self):
        """ the distinct addresses that have display channels assigned. """
        return set(self._addresses.values())

    def routes(self, default_address=None):
        """
        Resolves each display channel to the physical channel that supplies it.
        :param default_address: supplies the display channels without an address
        :return: a dictionary of display channel to Route. Display channels with no address and
            no default are omitted.
        """
        result = {}
        for display in DISPLAY_CHANNELS:
            address = self._addresses.get(display, default_address)
            if address is not None:
                result[display] = Route(address, display.kind, self._numbers.get(display, display.index))
        return result

    def to_dict(self):
        return {
            'ipAssignments': {d.key: a.key for d, a in self._addresses.items()},
            'numberAssignments': {d.key: n for d, n in self._numbers.items()},
        }

    @classmethod
    def from_dict(cls, values):
        """
        Restores a table from to_dict(). Entries for unknown display channels, invalid addresses
        or invalid channel numbers raise InvalidChannelError or InvalidAddressError.
        """
        table = cls()
        for key, address in (values or {}).get('ipAssignments', {}).items():
            table.assign(key, address or None)
        for key, number in (values or {}).get('numberAssignments', {}).items():
            table.set_channel_number(key, int(number) if number is not None else None)
        return table

    def __eq__(self, other):
        return isinstance(other, AssignmentTable) and self.to_dict() == other.to_dict()

    __hash__ = None
