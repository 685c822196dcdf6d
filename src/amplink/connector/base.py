import logging
import threading
from abc import abstractmethod

from amplink.conduit.base import Conduit
from amplink.support.events import EventSource
from amplink.support.mixins import StringerMixin

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """ Indicates an error condition with a connection. """


class ConnectionNotConnectedError(ConnectorError):
    """ Indicates a connection is in the disconnected state when a connection is required. """


class ConnectorEvent(StringerMixin):
    """ base class for connector events. """
    def __init__(self, connector):
        self.connector = connector


class ConnectorConnectedEvent(ConnectorEvent):
    """ The connector was connected. """


class ConnectorDisconnectedEvent(ConnectorEvent):
    """ The connector was disconnected. """


class Connector:
    """ A connector describes an endpoint to which a conduit can be established. """

    def __init__(self):
        self.events = EventSource()

    @property
    @abstractmethod
    def endpoint(self):
        """ the endpoint that this connector reaches out to """
        raise NotImplementedError

    @property
    @abstractmethod
    def connected(self) -> bool:
        """
        Determines if this connector is connected to its underlying resource.
        :return: True if this connector is connected to it's underlying resource. False otherwise.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def conduit(self) -> Conduit:
        """
        Retrieves the conduit for this connection.
        If the connection is not connected, raises ConnectionNotConnectedError
        """
        raise ConnectionNotConnectedError

    @abstractmethod
    def connect(self):
        """
        Connects this connector to the underlying resource.
        If the connection is already connected, this method returns silently.
        Raises ConnectorError if the connection cannot be established.
        """
        raise NotImplementedError

    @abstractmethod
    def disconnect(self):
        raise NotImplementedError


class AbstractConnector(Connector):
    """ Manages the connection cycle to an endpoint.
        disconnect() may be called from any thread, for example to wake a reader blocked on the conduit.
    """

    def __init__(self):
        super().__init__()
        self._conduit = None
        self._lock = threading.RLock()

    @property
    def connected(self):
        conduit = self._conduit
        return conduit is not None and conduit.open

    def connect(self):
        """ the lock is not held while connecting, so disconnect() never waits for a connection attempt. """
        with self._lock:
            if self.connected:
                return
            stale, self._conduit = self._conduit, None
        if stale is not None:
            stale.close()
        conduit = self._connect()
        with self._lock:
            if self.connected:
                # connected concurrently by another caller
                conduit.close()
                return
            self._conduit = conduit
        self.events.fire(ConnectorConnectedEvent(self))

    def disconnect(self):
        with self._lock:
            conduit = self._conduit
            if conduit is None:
                return
            self._conduit = None
            conduit.close()
        self.events.fire(ConnectorDisconnectedEvent(self))

    @abstractmethod
    def _connect(self) -> Conduit:
        """ Template method for subclasses to perform the connection.
            If connection is not possible, a ConnectorError should be thrown
        """
        raise NotImplementedError

    @property
    def conduit(self) -> Conduit:
        """
        Retrieves the conduit for this connection.
        raises ConnectionNotConnectedError if not connected
        """
        conduit = self._conduit
        if conduit is None or not conduit.open:
            raise ConnectionNotConnectedError("%s is not connected" % (self.endpoint,))
        return conduit

    def check_connected(self):
        if not self.connected:
            raise ConnectionNotConnectedError("%s is not connected" % (self.endpoint,))
