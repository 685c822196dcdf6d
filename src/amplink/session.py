"""
A device session owns the TCP connection to one amplifier.

The protocol is half-duplex: responses carry no request id, so a session sends one command at a
time and waits for the matching response, or for the response timeout, before sending the next.
Commands are queued by send() and exchanged on the session's background thread, which also
connects and reconnects with an exponential backoff.

Everything that happens on the connection is published as events on the session's event source:

- SessionConnectedEvent: the connection was established
- SessionDisconnectedEvent: the connection was lost or closed
- FrameReceivedEvent: a response frame was decoded, whether or not a command was waiting for it
- SessionErrorEvent: the receive buffer overflowed and was discarded. The connection stays open.
"""
import logging
import queue
import threading
import time
from abc import abstractmethod

from amplink import settings
from amplink.address import DeviceAddress
from amplink.conduit.base import ConduitClosedError
from amplink.connector.base import ConnectorError, ConnectionNotConnectedError
from amplink.connector.socketconn import SocketConnector
from amplink.protocol.asynchronous import AsyncLoop, FutureResponse, ResponseTimeoutError
from amplink.protocol.frames import FrameOverflowError
from amplink.protocol.io import FrameAccumulator
from amplink.support.events import EventSource
from amplink.support.mixins import StringerMixin
from amplink.support.retry_strategy import ExponentialBackoffRetryStrategy

logger = logging.getLogger(__name__)


class SessionState:
    disconnected = 'disconnected'
    connecting = 'connecting'
    connected = 'connected'
    reconnect_wait = 'reconnect-wait'
    terminated = 'terminated'


class SessionEvent(StringerMixin):
    def __init__(self, session):
        self.session = session

    @abstractmethod
    def apply(self, visitor: 'SessionEventVisitor'):
        raise NotImplementedError()


class SessionConnectedEvent(SessionEvent):
    def apply(self, visitor: 'SessionEventVisitor'):
        return visitor.session_connected(self)


class SessionDisconnectedEvent(SessionEvent):
    def __init__(self, session, reason=None):
        super().__init__(session)
        self.reason = reason

    def apply(self, visitor: 'SessionEventVisitor'):
        return visitor.session_disconnected(self)


class FrameReceivedEvent(SessionEvent):
    def __init__(self, session, frame):
        super().__init__(session)
        self.frame = frame

    def apply(self, visitor: 'SessionEventVisitor'):
        return visitor.frame_received(self)


class SessionErrorEvent(SessionEvent):
    def __init__(self, session, error):
        super().__init__(session)
        self.error = error

    def apply(self, visitor: 'SessionEventVisitor'):
        return visitor.session_error(self)


class SessionEventVisitor:
    """
    Receives session events by type. Instances can be added directly to a session's events,
    since calling the visitor applies the event to it.
    """

    def __call__(self, event: SessionEvent):
        return event.apply(self)

    def session_connected(self, event: SessionConnectedEvent):
        pass

    def session_disconnected(self, event: SessionDisconnectedEvent):
        pass

    def frame_received(self, event: FrameReceivedEvent):
        pass

    def session_error(self, event: SessionErrorEvent):
        pass


class DeviceSession(AsyncLoop):
    """
    A resilient connection to one amplifier.

    :param address: the DeviceAddress of the amplifier
    :param connector: opens the connection. Defaults to a socket connector for the address.
    :param response_timeout: seconds to wait for the response to each command
    :param retry_strategy: gives the delay before each reconnection attempt
    """

    idle_interval = 0.05

    def __init__(self, address: DeviceAddress, connector=None, response_timeout=None, retry_strategy=None,
                 max_buffer_size=None, log=logger):
        super().__init__(log=log, name='session-%s' % address.key)
        self.address = address
        self.connector = connector if connector is not None else \
            SocketConnector((address.host, address.port), settings.connect_timeout, log=log)
        self.response_timeout = response_timeout if response_timeout is not None else settings.response_timeout
        self.retry_strategy = retry_strategy if retry_strategy is not None else \
            ExponentialBackoffRetryStrategy(settings.reconnect_base_delay, settings.reconnect_max_delay)
        self.accumulator = FrameAccumulator(max_buffer_size or settings.max_buffer_size, log=log)
        self.events = EventSource()
        self.timeouts = 0
        self._requests = queue.Queue()
        self._state = SessionState.disconnected
        self._lock = threading.Lock()

    def __str__(self):
        return "session %s (%s)" % (self.address, self._state)

    @property
    def state(self):
        return self._state

    @property
    def connected(self):
        return self._state == SessionState.connected

    def open(self):
        """ starts connecting in the background. The session reconnects until it is closed. """
        with self._lock:
            if self._state == SessionState.terminated:
                raise ConnectorError("%s is closed" % self.address)
        self.start()

    def close(self):
        """
        Stops the session: cancels any reconnect wait or pending response, closes the connection and
        fails the queued commands. Must not be called from the session's own event handlers.
        """
        with self._lock:
            if self._state == SessionState.terminated:
                return
            was_connected = self._state == SessionState.connected
            was_connecting = self._state == SessionState.connecting
            self._state = SessionState.terminated
        if was_connecting:
            # the attempt finishes on the session thread, which discards the connection and exits
            self.stop(join=False)
        else:
            self.stop_event.set()
            self.connector.disconnect()
            self.stop()
        self._fail_queued(ConnectionNotConnectedError("%s was closed" % self.address))
        if was_connected:
            self.events.fire(SessionDisconnectedEvent(self))
        self.logger.info("closed session to %s" % self.address)

    def send(self, command) -> FutureResponse:
        """
        Queues a command to be sent once the commands before it have been answered or have timed out.
        :return: the future response. Callers that do not need the response may ignore it.
        :raises ConnectionNotConnectedError: the session is not connected.
        """
        future = FutureResponse(command)
        with self._lock:
            if self._state != SessionState.connected:
                raise ConnectionNotConnectedError("%s is not connected" % self.address)
            self._requests.put(future)
        return future

    def loop(self):
        if self._state != SessionState.connected:
            self._connect()
        else:
            self._exchange()

    def shutdown(self):
        self.connector.disconnect()
        self._fail_queued(ConnectionNotConnectedError("%s was closed" % self.address))

    def _set_state(self, state):
        with self._lock:
            if self._state == SessionState.terminated:
                return False
            self._state = state
        return True

    def _connect(self):
        if not self._set_state(SessionState.connecting):
            return
        try:
            self.connector.connect()
        except ConnectorError as e:
            if self._set_state(SessionState.reconnect_wait):
                self._backoff(e)
            return
        self.accumulator.clear()
        if not self.running() or not self._set_state(SessionState.connected):
            self.connector.disconnect()
            return
        self.retry_strategy.reset()
        self.logger.info("connected to %s" % self.address)
        self.events.fire(SessionConnectedEvent(self))

    def _backoff(self, reason):
        delay = self.retry_strategy()
        self.logger.debug("%s unavailable (%s), retrying in %.1fs" % (self.address, reason, delay))
        self.wait(delay)

    def _connection_lost(self, reason):
        self.connector.disconnect()
        self.accumulator.clear()
        if not self._set_state(SessionState.reconnect_wait):
            return
        self.logger.info("lost connection to %s: %s" % (self.address, reason))
        self._fail_queued(ConnectionNotConnectedError("lost connection to %s" % self.address))
        self.events.fire(SessionDisconnectedEvent(self, reason))
        self._backoff(reason)

    def _fail_queued(self, error):
        while True:
            try:
                future = self._requests.get_nowait()
            except queue.Empty:
                break
            future.fail(error)

    def _exchange(self):
        try:
            future = self._requests.get(timeout=self.idle_interval)
        except queue.Empty:
            self._receive(0.001)
            return
        if not future.set_running_or_notify_cancel():
            return
        command = future.request
        try:
            self.connector.conduit.write(command.encode())
        except (OSError, ConnectorError) as e:
            future.fail(ConnectionNotConnectedError("cannot send to %s: %s" % (self.address, e)))
            self._connection_lost(e)
            return

        deadline = time.monotonic() + self.response_timeout
        while not future.done():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.timeouts += 1
                future.fail(ResponseTimeoutError("no response from %s to %s within %.2fs" %
                                                 (self.address, command, self.response_timeout)))
            elif not self._receive(remaining, future):
                future.fail(ConnectionNotConnectedError("lost connection to %s" % self.address))

    def _receive(self, timeout, future: FutureResponse=None):
        """
        Reads from the connection and publishes the frames decoded. A frame that answers the
        future completes it.
        :return: False if the connection was lost
        """
        try:
            data = self.connector.conduit.read(1024, timeout)
        except (ConduitClosedError, OSError, ConnectorError) as e:
            self._connection_lost(e)
            return False
        if not data:
            return True
        try:
            frames = self.accumulator.feed(data, future.request.function) if future else self.accumulator.feed(data)
        except FrameOverflowError as e:
            self.logger.warning("%s: %s" % (self.address, e))
            self.events.fire(SessionErrorEvent(self, e))
            return True
        for frame in frames:
            if future is not None and future.matches(frame):
                future.complete(frame)
            self.events.fire(FrameReceivedEvent(self, frame))
        return True
