"""
Routes samples from the amplifiers to the display channels assigned to them.

The router keeps one monitored device (a session and its poll cycle) for each amplifier that is
needed: the default amplifier and every amplifier with display channels assigned. Each configuration
change reconciles the devices against the assignment table before it returns.

A display channel is supplied by exactly one route at any time. Samples are matched against the
current routes when they are delivered, under the router lock, and only from the device that is
currently live for the sample's address. A device being replaced has already lost its place in the
live map before it is closed, so it cannot deliver samples for the new configuration.
"""
import functools
import logging
import threading

from amplink import settings
from amplink.address import DeviceAddress
from amplink.broadcast import StatusEvent, ChannelSampleEvent, MuteSampleEvent, RouterErrorEvent, BroadcastListener
from amplink.channels import AssignmentTable, DisplayChannel, DISPLAY_CHANNELS, ALL_OUTPUT, Route
from amplink.mute_gateway import MuteGateway
from amplink.poll_cycle import PollCycle, ChannelSample, MuteSample
from amplink.protocol.asynchronous import AsyncLoop
from amplink.protocol.frames import ChannelKind, MASTER_CHANNEL
from amplink.session import DeviceSession, SessionEventVisitor
from amplink.support.events import EventSource

logger = logging.getLogger(__name__)


class RouterError(ValueError):
    """ A request to the router that cannot be carried out. """


class MonitoredDevice:
    """ A session to one amplifier, and the poll cycle that reads its channels. """

    def __init__(self, session: DeviceSession, poll_cycle: PollCycle):
        self.session = session
        self.poll_cycle = poll_cycle

    @property
    def address(self):
        return self.session.address

    @property
    def samples(self):
        return self.poll_cycle.samples

    def open(self):
        self.session.open()
        self.poll_cycle.open()

    def close(self):
        self.session.close()
        self.poll_cycle.close()

    def clear(self):
        """ forgets the values published, so that each is published again when next read. """
        self.poll_cycle.clear()


def monitored_device(address: DeviceAddress) -> MonitoredDevice:
    session = DeviceSession(address)
    return MonitoredDevice(session, PollCycle(session))


class _DeviceWatcher(SessionEventVisitor):
    """ forwards the session events of one device to the router. """

    def __init__(self, router: 'ChannelRouter', device: MonitoredDevice):
        self.router = router
        self.device = device

    def session_connected(self, event):
        self.router._device_connection_changed(self.device)

    def session_disconnected(self, event):
        self.router._device_connection_changed(self.device)

    def session_error(self, event):
        self.router._device_error(self.device, event.error)


class ChannelRouter:
    """
    :param table: the channel assignments
    :param device_factory: creates the MonitoredDevice for an address
    :param status_period: seconds between repeated status events
    """

    def __init__(self, table: AssignmentTable=None, device_factory=monitored_device, status_period=None, log=logger):
        self.table = table if table is not None else AssignmentTable()
        self.device_factory = device_factory
        self.status_period = status_period if status_period is not None else settings.status_period
        self.logger = log
        self.listeners = EventSource()
        self.default_address = None
        self.gateway = MuteGateway(self, log=log)
        self._monitoring = False
        self._devices = {}
        self._routes = {}
        self._lock = threading.RLock()
        self._heartbeat = AsyncLoop(self._repeat_status, log=log, name='router-status')

    def add_listener(self, listener: BroadcastListener):
        self.listeners.add(listener)

    def remove_listener(self, listener: BroadcastListener):
        self.listeners.remove(listener)

    def start(self):
        """ starts repeating the status every status period. """
        self._heartbeat.start()

    def shutdown(self):
        """ stops the status heartbeat and closes every session. """
        self._heartbeat.stop()
        with self._lock:
            self.default_address = None
            self._monitoring = False
        self._reconcile()

    def connect(self, address):
        """ makes the address the default amplifier and starts monitoring. """
        address = DeviceAddress.parse(address)
        with self._lock:
            self.default_address = address
            self._monitoring = True
        self.logger.info("default amplifier is %s" % address)
        self._reconcile()
        self.publish_status()

    def disconnect(self):
        """ stops monitoring. Every session is closed until the next connect(). """
        with self._lock:
            self.default_address = None
            self._monitoring = False
        self.logger.info("monitoring stopped")
        self._reconcile()
        self.publish_status()

    def set_assignment(self, display, address=None):
        with self._lock:
            self.table.assign(display, address)
        self._reconcile()

    def set_channel_number(self, display, number=None):
        with self._lock:
            self.table.set_channel_number(display, number)
        self._reconcile()

    def assign_all(self, address):
        with self._lock:
            self.table.assign_all(address)
        self._reconcile()

    def load_table(self, table: AssignmentTable):
        """ replaces the assignment table. """
        with self._lock:
            self.table = table
        self._reconcile()

    def set_mute(self, kind, channel_id, mute):
        return self.gateway.set_mute(kind, channel_id, mute)

    @property
    def monitoring(self):
        return self._monitoring

    def route_for(self, display) -> Route:
        with self._lock:
            return self._routes.get(DisplayChannel.parse(display))

    def routes(self):
        with self._lock:
            return dict(self._routes)

    def session_for(self, address):
        with self._lock:
            device = self._devices.get(address)
            return device.session if device is not None else None

    def addresses(self):
        """ the addresses of the amplifiers that have sessions. """
        with self._lock:
            return set(self._devices)

    def status(self) -> StatusEvent:
        """ the connection status of the default amplifier. """
        with self._lock:
            address = self.default_address
            session = self.session_for(address) if address is not None else None
            return StatusEvent(session is not None and session.connected, address)

    def publish_status(self):
        self.listeners.fire(self.status())

    def _repeat_status(self):
        if not self._heartbeat.wait(self.status_period):
            self.publish_status()

    def _reconcile(self):
        """ brings the devices and routes in line with the table and the default address. """
        with self._lock:
            routes = self.table.routes(self.default_address) if self._monitoring else {}
            previous = self._routes
            required = {route.address for route in routes.values()}
            if self._monitoring and self.default_address is not None:
                required.add(self.default_address)
            self._routes = routes
            stale = [self._devices.pop(address) for address in list(self._devices) if address not in required]
            created = []
            for address in required.difference(self._devices):
                device = self.device_factory(address)
                device.samples.add(functools.partial(self._deliver, device))
                device.session.events.add(_DeviceWatcher(self, device))
                self._devices[address] = device
                created.append(device)
            # a device that takes over a display channel must publish its current value again
            rerouted = {route.address for display, route in routes.items() if previous.get(display) != route}
            refreshed = [device for address, device in self._devices.items()
                         if address in rerouted and device not in created]
        for device in stale:
            self.logger.info("closing session to %s" % device.address)
            device.close()
        for device in created:
            self.logger.info("opening session to %s" % device.address)
            device.open()
        for device in refreshed:
            device.clear()

    def _is_live(self, device):
        return self._devices.get(device.address) is device

    def _deliver(self, device: MonitoredDevice, sample):
        with self._lock:
            if not self._is_live(device):
                return
            address = device.address
            if isinstance(sample, ChannelSample):
                events = [ChannelSampleEvent(display, sample.value_db)
                          for display in self._displays_for(address, sample)]
            elif isinstance(sample, MuteSample):
                if sample.kind == ChannelKind.output and sample.channel == MASTER_CHANNEL:
                    displays = [ALL_OUTPUT] if address == self.default_address else []
                else:
                    displays = self._displays_for(address, sample)
                events = [MuteSampleEvent(display, sample.muted) for display in displays]
            else:
                return
            self.listeners.fire_all(events)

    def _displays_for(self, address, sample):
        route = Route(address, sample.kind, sample.channel)
        return [display for display in DISPLAY_CHANNELS if self._routes.get(display) == route]

    def _device_connection_changed(self, device):
        with self._lock:
            is_default = self._is_live(device) and device.address == self.default_address
        if is_default:
            self.publish_status()

    def _device_error(self, device, error):
        with self._lock:
            if not self._is_live(device):
                return
        self.listeners.fire(RouterErrorEvent("%s: %s" % (device.address, error)))
