"""
Encodes commands for, and decodes responses from, the amplifier control protocol.

Every frame starts with the 4 byte sentinel A5 C3 3C 5A and ends with EE. There is no length
prefix or checksum, so framing relies on the fixed frame sizes and the sentinels.

Commands::

    gain read   A5 C3 3C 5A <dev> 63 0E 02 <type> <channel> EE
    mute read   A5 C3 3C 5A <dev> 63 03 02 <type> <channel> EE
    mute write  A5 C3 3C 5A <dev> 36 03 03 03 <type> <channel> <state> EE

Responses (13 bytes)::

    A5 C3 3C 5A <dev> <operation> <function> <length> <type> <channel> <hi> <lo> EE

The value is a big-endian signed 16-bit integer. For gain responses it is tenths of a dB,
for mute responses it is non-zero when the channel is muted.

The type is 01 for inputs and 02 for outputs. Channel 0 on the outputs addresses the
master (all outputs) mute.
"""
from abc import abstractmethod

from amplink.support.mixins import CommonEqualityMixin, StringerMixin

HEADER = bytes((0xA5, 0xC3, 0x3C, 0x5A))
FOOTER = 0xEE
BROADCAST_DEVICE_ID = 0xFF

MIN_FRAME_LENGTH = 12
RESPONSE_LENGTH = 13
READ_COMMAND_LENGTH = 11
WRITE_MUTE_COMMAND_LENGTH = 13

DEVICE_OFFSET = 4
OPERATION_OFFSET = 5
FUNCTION_OFFSET = 6
TYPE_OFFSET = 8
CHANNEL_OFFSET = 9
VALUE_OFFSET = 10

MUTE_WRITE_MARKER = 0x03
MASTER_CHANNEL = 0
CHANNELS = range(1, 5)


class Operations:
    read = 0x63
    write = 0x36


class Functions:
    mute = 0x03
    gain_level = 0x0E


class ChannelKind:
    input = 'input'
    output = 'output'
    all_output = 'all-output'


channel_type_codes = {ChannelKind.input: 0x01, ChannelKind.output: 0x02}
channel_kinds = {code: kind for kind, code in channel_type_codes.items()}


class FrameError(IOError):
    """ The bytes at the head of a buffer are not a usable frame. """


class FrameTooShortError(FrameError):
    """ More bytes are needed before a frame can be decoded. """


class FrameInvalidError(FrameError):
    """
    The bytes at the head of the buffer are not a frame. The bytes before skip should be
    discarded, since skip is the offset of the next possible start sentinel.
    """
    def __init__(self, message, skip):
        super().__init__(message)
        self.skip = skip


class FrameMismatchError(FrameError):
    """
    A well-formed frame of the wrong kind. The frame occupies length bytes, which
    should be dropped without searching for a new start sentinel.
    """
    def __init__(self, message, length):
        super().__init__(message)
        self.length = length


class FrameOverflowError(FrameError):
    """ Too many bytes were buffered without finding a frame. """


class InvalidChannelError(ValueError):
    """ A channel type or channel number outside of the range the amplifier supports. """


def signed_short(hi, lo):
    """Combine two bytes, most significant first, into a 2's complement signed value.

    >>> signed_short(0, 0)
    0
    >>> signed_short(0xFF, 0xFF)
    -1
    >>> signed_short(0x7F, 0xFF)
    32767
    >>> signed_short(0x80, 0x00)
    -32768
    >>> signed_short(0xFE, 0x0C)
    -500
    """
    value = (hi << 8) | lo
    return value - 0x10000 if value & 0x8000 else value


def short_bytes(value):
    """Split a signed 16-bit value into two bytes, most significant first.

    >>> short_bytes(-500)
    (254, 12)
    >>> short_bytes(1)
    (0, 1)
    """
    if not -0x8000 <= value <= 0x7FFF:
        raise ValueError("value %s does not fit in 16 bits" % value)
    value &= 0xFFFF
    return value >> 8, value & 0xFF


def find_resync_offset(buf, start=1):
    """
    Finds where the next frame could start. This is the next complete start sentinel at or after
    start, or failing that, a partial start sentinel at the end of the buffer.

    >>> find_resync_offset(bytes([0, 0xA5, 0xC3, 0x3C, 0x5A, 0xEE]))
    1
    >>> find_resync_offset(bytes([0xA5, 1, 2, 3, 4, 0xA5, 0xC3]))
    5
    >>> find_resync_offset(bytes([0xA5, 1, 2, 3]))
    4
    """
    index = bytes(buf).find(HEADER, start)
    if index >= 0:
        return index
    for i in range(max(start, len(buf) - len(HEADER) + 1), len(buf)):
        if HEADER.startswith(bytes(buf[i:])):
            return i
    return len(buf)


def validate_channel(kind, channel, allow_master=False):
    if kind not in channel_type_codes:
        raise InvalidChannelError("invalid channel type %r" % (kind,))
    if channel in CHANNELS:
        return
    if allow_master and kind == ChannelKind.output and channel == MASTER_CHANNEL:
        return
    raise InvalidChannelError("invalid %s channel %r" % (kind, channel))


class Command(CommonEqualityMixin, StringerMixin):
    """
    A request sent to the amplifier. Responses carry no request id, so they are paired with
    a command by the response key: the function code, channel type and channel.
    """
    operation = Operations.read
    function = None
    data_length = 2
    frame_length = READ_COMMAND_LENGTH

    def __init__(self, kind, channel, device_id=BROADCAST_DEVICE_ID):
        self.kind = kind
        self.channel = channel
        self.device_id = device_id

    @property
    def response_key(self):
        return self.function, self.kind, self.channel

    @abstractmethod
    def _payload(self) -> bytes:
        raise NotImplementedError

    def encode(self) -> bytes:
        return HEADER + bytes((self.device_id, self.operation, self.function, self.data_length)) + \
            self._payload() + bytes((FOOTER,))

    def to_stream(self, file):
        file.write(self.encode())


class ReadGainCommand(Command):
    """ Reads the gain level of one input or output channel. """
    function = Functions.gain_level

    def __init__(self, kind, channel, device_id=BROADCAST_DEVICE_ID):
        validate_channel(kind, channel)
        super().__init__(kind, channel, device_id)

    def _payload(self):
        return bytes((channel_type_codes[self.kind], self.channel))


class ReadMuteCommand(Command):
    """ Reads the mute state of one channel, or of the master when the output channel is 0. """
    function = Functions.mute

    def __init__(self, kind, channel, device_id=BROADCAST_DEVICE_ID):
        validate_channel(kind, channel, allow_master=True)
        super().__init__(kind, channel, device_id)

    def _payload(self):
        return bytes((channel_type_codes[self.kind], self.channel))


class WriteMuteCommand(Command):
    """ Mutes or unmutes one channel, or the master when the output channel is 0. """
    operation = Operations.write
    function = Functions.mute
    data_length = 3
    frame_length = WRITE_MUTE_COMMAND_LENGTH

    def __init__(self, kind, channel, mute, device_id=BROADCAST_DEVICE_ID):
        validate_channel(kind, channel, allow_master=True)
        super().__init__(kind, channel, device_id)
        self.mute = bool(mute)

    def _payload(self):
        return bytes((MUTE_WRITE_MARKER, channel_type_codes[self.kind], self.channel, 0x01 if self.mute else 0x00))


class Response(CommonEqualityMixin, StringerMixin):
    """
    A decoded response frame. raw is the signed 16-bit value carried by the frame.
    """
    function = None
    frame_length = RESPONSE_LENGTH

    def __init__(self, kind, channel, raw, device_id=BROADCAST_DEVICE_ID, operation=Operations.read):
        self.kind = kind
        self.channel = channel
        self.raw = raw
        self.device_id = device_id
        self.operation = operation

    @property
    def response_key(self):
        return self.function, self.kind, self.channel

    @property
    @abstractmethod
    def value(self):
        raise NotImplementedError

    def encode(self) -> bytes:
        hi, lo = short_bytes(self.raw)
        return HEADER + bytes((self.device_id, self.operation, self.function, 0x04,
                               channel_type_codes[self.kind], self.channel, hi, lo, FOOTER))


class GainResponse(Response):
    function = Functions.gain_level

    @classmethod
    def from_db(cls, kind, channel, db, device_id=BROADCAST_DEVICE_ID):
        return cls(kind, channel, int(round(db * 10)), device_id)

    @property
    def db(self):
        return self.raw / 10.0

    @property
    def value(self):
        return self.db


class MuteResponse(Response):
    function = Functions.mute

    @classmethod
    def for_state(cls, kind, channel, muted, device_id=BROADCAST_DEVICE_ID, operation=Operations.read):
        return cls(kind, channel, 1 if muted else 0, device_id, operation)

    @property
    def muted(self):
        return self.raw != 0

    @property
    def value(self):
        return self.muted


response_types = {
    Functions.gain_level: GainResponse,
    Functions.mute: MuteResponse,
}


def decode_response(buf, expected_function=None) -> Response:
    """
    Decodes the response frame at the head of buf.

    :param buf: the buffered bytes. The buffer is not modified.
    :param expected_function: when given, frames with any other function code are rejected
        with FrameMismatchError.
    :raises FrameTooShortError: more bytes are needed.
    :raises FrameInvalidError: the head of the buffer is not a frame. Discard up to the error's skip offset.
    :raises FrameMismatchError: a well formed frame that is not wanted. Discard RESPONSE_LENGTH bytes.
    """
    if len(buf) < MIN_FRAME_LENGTH:
        raise FrameTooShortError("%d bytes buffered" % len(buf))
    if buf[:len(HEADER)] != HEADER:
        raise FrameInvalidError("invalid start sentinel", find_resync_offset(buf))
    if len(buf) < RESPONSE_LENGTH:
        raise FrameTooShortError("%d bytes buffered" % len(buf))
    if buf[RESPONSE_LENGTH - 1] != FOOTER:
        raise FrameInvalidError("invalid end sentinel 0x%02X" % buf[RESPONSE_LENGTH - 1], find_resync_offset(buf))

    function = buf[FUNCTION_OFFSET]
    if expected_function is not None and function != expected_function:
        raise FrameMismatchError("function 0x%02X when expecting 0x%02X" % (function, expected_function),
                                 RESPONSE_LENGTH)
    response_type = response_types.get(function)
    if response_type is None:
        raise FrameMismatchError("unknown function 0x%02X" % function, RESPONSE_LENGTH)
    kind = channel_kinds.get(buf[TYPE_OFFSET])
    if kind is None:
        raise FrameMismatchError("unknown channel type 0x%02X" % buf[TYPE_OFFSET], RESPONSE_LENGTH)
    raw = signed_short(buf[VALUE_OFFSET], buf[VALUE_OFFSET + 1])
    return response_type(kind, buf[CHANNEL_OFFSET], raw, buf[DEVICE_OFFSET], buf[OPERATION_OFFSET])


def decode_command(buf) -> Command:
    """
    Decodes the command frame at the head of buf. This is the device side of the protocol, used
    to simulate an amplifier.

    The errors raised are as for decode_response(). A FrameMismatchError carries the length of the
    unrecognized command.
    """
    if len(buf) < READ_COMMAND_LENGTH:
        raise FrameTooShortError("%d bytes buffered" % len(buf))
    if buf[:len(HEADER)] != HEADER:
        raise FrameInvalidError("invalid start sentinel", find_resync_offset(buf))
    operation = buf[OPERATION_OFFSET]
    length = WRITE_MUTE_COMMAND_LENGTH if operation == Operations.write else READ_COMMAND_LENGTH
    if len(buf) < length:
        raise FrameTooShortError("%d bytes buffered" % len(buf))
    if buf[length - 1] != FOOTER:
        raise FrameInvalidError("invalid end sentinel 0x%02X" % buf[length - 1], find_resync_offset(buf))

    device_id = buf[DEVICE_OFFSET]
    function = buf[FUNCTION_OFFSET]
    try:
        if operation == Operations.read and function in (Functions.gain_level, Functions.mute):
            kind = channel_kinds.get(buf[TYPE_OFFSET])
            command_type = ReadGainCommand if function == Functions.gain_level else ReadMuteCommand
            return command_type(kind, buf[CHANNEL_OFFSET], device_id)
        if operation == Operations.write and function == Functions.mute and buf[TYPE_OFFSET] == MUTE_WRITE_MARKER:
            kind = channel_kinds.get(buf[TYPE_OFFSET + 1])
            return WriteMuteCommand(kind, buf[TYPE_OFFSET + 2], buf[TYPE_OFFSET + 3] != 0, device_id)
    except InvalidChannelError as e:
        raise FrameMismatchError(str(e), length) from e
    raise FrameMismatchError("unknown command 0x%02X 0x%02X" % (operation, function), length)
