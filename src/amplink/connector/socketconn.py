import logging
import socket

from amplink.conduit.base import Conduit, SocketConduit
from amplink.connector.base import AbstractConnector, ConnectorError

logger = logging.getLogger(__name__)


class SocketConnector(AbstractConnector):
    """
    A connector that communicates data via a TCP socket
    """
    def __init__(self, address, connect_timeout=5.0, log=logger):
        """
        Creates a new socket connector.
        :param address the (host, port) to connect to
        :param connect_timeout the seconds to wait for the connection to be established
        """
        super().__init__()
        self._address = address
        self.connect_timeout = connect_timeout
        self.logger = log

    @property
    def endpoint(self):
        return self._address

    def _connect(self) -> Conduit:
        try:
            sock = socket.create_connection(self._address, self.connect_timeout)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            self.logger.info("opened socket to %s:%s" % self._address)
            return SocketConduit(sock)
        except OSError as e:
            self.logger.debug("error opening socket to %s:%s: %s" % (self._address + (e,)))
            raise ConnectorError("cannot connect to %s:%s" % self._address) from e
