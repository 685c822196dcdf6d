"""


Amplifier Connections

- Frames: the fixed-format binary commands and responses of the amplifier protocol.
    Commands read a gain or mute, or write a mute. FrameAccumulator reassembles responses
    from a TCP stream, resynchronizing on the frame header.
- Conduit: a connected socket with timed reads.
- Connector: opens the conduit to an amplifier address.
- DeviceSession - one resilient connection to one amplifier. Commands are queued and
    exchanged one at a time; each waits for its response or times out. The session reconnects
    with exponential backoff and fires connected, disconnected, frame and error events.
- PollCycle - reads the 8 gains, the 8 mutes and the master mute of a session in turn, and
    publishes each value when it changes.
- AssignmentTable - assigns each of the 8 display channels to an amplifier and a physical channel.
    Display channels without an amplifier are read from the default amplifier.
- ChannelRouter - keeps a session and poll cycle for each amplifier the table needs and forwards
    each sample to the display channels it supplies. Listeners receive BroadcastEvents.
- MuteGateway - sends mute commands to the amplifier that supplies a display channel.
- ControlApi - the operations offered to a user interface, backed by the router, the saved
    devices (DeviceRegistry) and a JsonStore.
- probe - a command line tool that reads every channel of one amplifier once.
- FakeAmplifier - an in-process amplifier for tests and trials.

"""
