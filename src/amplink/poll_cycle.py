"""
Polls an amplifier for the gain and mute state of every channel, and publishes the values that changed.
"""
import concurrent.futures
import logging
import threading
import time

from amplink import settings
from amplink.connector.base import ConnectorError
from amplink.protocol.asynchronous import AsyncLoop
from amplink.protocol.frames import ChannelKind, CHANNELS, MASTER_CHANNEL, ReadGainCommand, ReadMuteCommand, \
    GainResponse, MuteResponse
from amplink.session import DeviceSession, SessionEventVisitor, FrameReceivedEvent
from amplink.support.events import EventSource
from amplink.support.mixins import StringerMixin

logger = logging.getLogger(__name__)


class ChannelSample(StringerMixin):
    """ The gain level of a physical channel. """
    def __init__(self, kind, channel, value_db, timestamp=None):
        self.kind = kind
        self.channel = channel
        self.value_db = value_db
        self.timestamp = timestamp if timestamp is not None else time.time()


class MuteSample(StringerMixin):
    """ The mute state of a physical channel. Channel 0 on the outputs is the master mute. """
    def __init__(self, kind, channel, muted, timestamp=None):
        self.kind = kind
        self.channel = channel
        self.muted = muted
        self.timestamp = timestamp if timestamp is not None else time.time()


def poll_queries(device_id=None):
    """
    The commands in the order they are polled: gain of inputs 1-4 and outputs 1-4, then mute of
    inputs 1-4, outputs 1-4 and the master.
    :param device_id: the device id placed in each command. Defaults to the configured device id.
    """
    device_id = device_id if device_id is not None else settings.device_id
    kinds = (ChannelKind.input, ChannelKind.output)
    queries = [ReadGainCommand(kind, channel, device_id) for kind in kinds for channel in CHANNELS]
    queries += [ReadMuteCommand(kind, channel, device_id) for kind in kinds for channel in CHANNELS]
    queries.append(ReadMuteCommand(ChannelKind.output, MASTER_CHANNEL, device_id))
    return queries


class PollCycle(AsyncLoop, SessionEventVisitor):
    """
    Sends one query per tick to a session, in rotation. Each tick starts one interval after the previous
    one started, unless waiting for the response took longer.

    Every frame the session receives is turned into a sample, and published on samples when it differs
    from the last value published for the same channel. The last values are forgotten when the
    session connects or disconnects, so the first value read on a new connection is always published.

    :param session: the session to poll
    :param interval: seconds from the start of one tick to the start of the next
    """

    def __init__(self, session: DeviceSession, interval=None, log=logger):
        super().__init__(log=log, name='poll-%s' % session.address.key)
        self.session = session
        self.interval = interval if interval is not None else settings.poll_interval
        self.queries = poll_queries()
        self.position = 0
        self.failures = 0
        self.samples = EventSource()
        self._last_values = {}
        self._lock = threading.Lock()

    def open(self):
        self.session.events.add(self)
        self.start()

    def close(self):
        self.stop()
        self.session.events.remove(self)

    def loop(self):
        started = time.monotonic()
        if self.session.connected:
            self.tick()
        remaining = self.interval - (time.monotonic() - started)
        if remaining > 0:
            self.wait(remaining)

    def tick(self):
        """ sends the next query and waits for the response. A failed query is counted and skipped. """
        command = self.queries[self.position]
        self.position = (self.position + 1) % len(self.queries)
        try:
            future = self.session.send(command)
            # the session fails the future once its response timeout elapses
            future.result(self.session.response_timeout + self.interval)
        except (IOError, ConnectorError, concurrent.futures.TimeoutError, concurrent.futures.CancelledError) as e:
            self.failures += 1
            self.logger.debug("%s: %s failed: %s" % (self.session.address, command, e))

    def clear(self):
        with self._lock:
            self._last_values.clear()

    def session_connected(self, event):
        self.clear()

    def session_disconnected(self, event):
        self.clear()

    def frame_received(self, event: FrameReceivedEvent):
        frame = event.frame
        key = frame.response_key
        value = frame.value
        with self._lock:
            if key in self._last_values and self._last_values[key] == value:
                return
            self._last_values[key] = value
        if isinstance(frame, GainResponse):
            sample = ChannelSample(frame.kind, frame.channel, value)
        elif isinstance(frame, MuteResponse):
            sample = MuteSample(frame.kind, frame.channel, value)
        else:
            return
        self.samples.fire(sample)
