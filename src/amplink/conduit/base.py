import socket
from abc import abstractmethod


class ConduitClosedError(IOError):
    """ The peer closed the connection. """


class Conduit:
    """
    A conduit allows two-way communication with a connected endpoint. Reads are bounded by a timeout
    so that a reader can give up waiting for a reply without closing the conduit.
    """

    @property
    @abstractmethod
    def target(self):
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        """ determines if this conduit is open. When open, the conduit can be read from and written to."""
        raise NotImplementedError

    @abstractmethod
    def read(self, max_bytes, timeout=None) -> bytes:
        """
        Reads the bytes available, waiting up to timeout seconds for at least one byte.
        :return: the bytes read, or None if the timeout elapsed first.
        :raises ConduitClosedError: the peer closed the connection.
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, data: bytes):
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """
        Closes the conduit. A read blocked on another thread is woken.
        """
        raise NotImplementedError


class SocketConduit(Conduit):
    """
    A conduit that provides communication via a socket.
    :param sock The open, connected socket
    """
    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._closed = False

    @property
    def open(self) -> bool:
        return not self._closed and self.sock.fileno() >= 0

    @property
    def target(self):
        return self.sock

    def read(self, max_bytes=1024, timeout=None):
        self.sock.settimeout(timeout)
        try:
            data = self.sock.recv(max_bytes)
        except socket.timeout:
            return None
        if not data:
            self._closed = True
            raise ConduitClosedError("connection closed by peer")
        return data

    def write(self, data):
        self.sock.settimeout(None)
        self.sock.sendall(data)

    def close(self):
        if self._closed and self.sock.fileno() < 0:
            return
        self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # the peer may have closed the socket
        finally:
            self.sock.close()
