"""
An in-process amplifier that speaks the device side of the control protocol over TCP.

It answers gain and mute reads from its own channel state and applies mute writes. Behaviors
useful for exercising a client can be switched on: channels that never answer, garbage sent
before each response, responses split into small fragments, a fixed response delay, and
dropping every open connection.
"""
import logging
import socket
import threading
import time

from amplink.protocol.asynchronous import AsyncLoop
from amplink.protocol.frames import ChannelKind, CHANNELS, MASTER_CHANNEL, ReadGainCommand, ReadMuteCommand, \
    WriteMuteCommand, GainResponse, MuteResponse, Operations, decode_command
from amplink.protocol.io import FrameAccumulator

logger = logging.getLogger(__name__)


class FakeAmplifier:

    def __init__(self, host='127.0.0.1', port=0, log=logger):
        self.host = host
        self.port = port
        self.logger = log
        self.gains = {(kind, channel): 0.0 for kind in (ChannelKind.input, ChannelKind.output) for channel in CHANNELS}
        self.mutes = {key: False for key in self.gains}
        self.mutes[(ChannelKind.output, MASTER_CHANNEL)] = False
        self.silent = set()         # response keys that are never answered
        self.prefix = b''           # sent before each response
        self.fragment_size = None   # when set, responses are written in pieces of this size
        self.delay = 0              # seconds to wait before responding
        self.commands = []
        self.received_at = []       # monotonic time each command arrived
        self.connection_count = 0
        self._condition = threading.Condition()
        self._server = None
        self._accept_loop = None
        self._clients = []

    @property
    def address(self):
        return self.host, self.port

    def start(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((self.host, self.port))
        server.listen(5)
        server.settimeout(0.05)
        self.port = server.getsockname()[1]
        self._server = server
        self._accept_loop = AsyncLoop(self._accept, log=self.logger, name='fake-amplifier-%d' % self.port)
        self._accept_loop.start()
        self.logger.info("fake amplifier listening on %s:%d" % self.address)
        return self

    def stop(self):
        if self._accept_loop is not None:
            self._accept_loop.stop()
            self._accept_loop = None
        self.drop_connections()
        if self._server is not None:
            self._server.close()
            self._server = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *args):
        self.stop()

    def drop_connections(self):
        """ closes every client connection. The server keeps accepting new connections. """
        with self._condition:
            clients, self._clients = self._clients, []
        for client in clients:
            client.stop()

    def set_gain(self, kind, channel, db):
        self.gains[(kind, channel)] = db

    def set_mute(self, kind, channel, muted):
        self.mutes[(kind, channel)] = muted

    def wait_for_commands(self, count, timeout=2):
        """ waits until at least count commands have been received, and returns the commands received. """
        with self._condition:
            self._condition.wait_for(lambda: len(self.commands) >= count, timeout)
            return list(self.commands)

    def wait_for_connections(self, count, timeout=2):
        with self._condition:
            return self._condition.wait_for(lambda: self.connection_count >= count, timeout)

    def _accept(self):
        try:
            sock, peer = self._server.accept()
        except socket.timeout:
            return
        self.logger.debug("fake amplifier accepted %s:%d" % peer)
        client = _ClientLoop(self, sock)
        with self._condition:
            self._clients.append(client)
            self.connection_count += 1
            self._condition.notify_all()
        client.start()

    def respond(self, command):
        """ applies the command and returns the response to send, or None for no response. """
        with self._condition:
            self.commands.append(command)
            self.received_at.append(time.monotonic())
            self._condition.notify_all()
        if command.response_key in self.silent:
            return None
        if isinstance(command, ReadGainCommand):
            return GainResponse.from_db(command.kind, command.channel, self.gains[(command.kind, command.channel)])
        if isinstance(command, WriteMuteCommand):
            self.mutes[(command.kind, command.channel)] = command.mute
            return MuteResponse.for_state(command.kind, command.channel, command.mute, operation=Operations.write)
        if isinstance(command, ReadMuteCommand):
            return MuteResponse.for_state(command.kind, command.channel, self.mutes[(command.kind, command.channel)])
        return None


class _ClientLoop(AsyncLoop):
    """ serves one client connection. """

    def __init__(self, amplifier: FakeAmplifier, sock):
        super().__init__(log=amplifier.logger)
        self.amplifier = amplifier
        self.sock = sock
        self.accumulator = FrameAccumulator(decode=decode_command, log=amplifier.logger)

    def loop(self):
        self.sock.settimeout(0.05)
        try:
            data = self.sock.recv(1024)
        except socket.timeout:
            return
        except OSError:
            self.stop_event.set()
            return
        if not data:
            self.stop_event.set()
            return
        for command in self.accumulator.feed(data):
            response = self.amplifier.respond(command)
            if response is not None:
                self._send(response.encode())

    def _send(self, data):
        amplifier = self.amplifier
        if amplifier.delay:
            time.sleep(amplifier.delay)
        data = amplifier.prefix + data
        size = amplifier.fragment_size or len(data)
        for i in range(0, len(data), size):
            self.sock.sendall(data[i:i + size])

    def shutdown(self):
        self.sock.close()

    def stop(self):
        self.stop_event.set()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # already closed by the peer
        super().stop()
