import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, has_properties, contains_exactly, starts_with, has_length

from amplink.address import DeviceAddress
from amplink.broadcast import StatusEvent
from amplink.channels import DisplayChannel, Route
from amplink.facade import ControlApi, CommandResult
from amplink.protocol.frames import ChannelKind, WriteMuteCommand
from amplink.router import ChannelRouter
from amplink.router_test import StubDevice
from amplink.store import JsonStore

A = DeviceAddress('10.0.0.1')
B = DeviceAddress('10.0.0.2')


class ControlApiTest(unittest.TestCase):

    def setUp(self):
        self.dir = tempfile.mkdtemp()
        self.store = JsonStore(os.path.join(self.dir, 'amplink.json'), log=Mock())
        self.devices = {}
        self.router = ChannelRouter(device_factory=self.create_device, status_period=60, log=Mock())
        self.sut = ControlApi(self.router, store=self.store, log=Mock())

    def tearDown(self):
        self.router.shutdown()
        shutil.rmtree(self.dir)

    def create_device(self, address):
        device = StubDevice(address)
        self.devices[address] = device
        return device

    def test_connect(self):
        result = self.sut.connect('10.0.0.1')
        assert_that(result, is_(CommandResult(True, "Connected to 10.0.0.1:8234")))
        assert_that(self.router.default_address, is_(A))

    def test_connect_invalid_address(self):
        result = self.sut.connect('not an address')
        assert_that(result.success, is_(False))
        assert_that(result.message, starts_with("invalid address"))

    def test_disconnect(self):
        self.sut.connect('10.0.0.1')
        assert_that(self.sut.disconnect().success, is_(True))
        assert_that(self.router.monitoring, is_(False))

    def test_switch_requires_saved_device(self):
        assert_that(self.sut.switch('10.0.0.2').success, is_(False))
        self.sut.add_device('10.0.0.2', 'rack')
        result = self.sut.switch('10.0.0.2')
        assert_that(result, has_properties(success=True, message="Switched to rack", value=B))
        assert_that(self.router.default_address, is_(B))

    def test_set_assignment(self):
        self.sut.add_device('10.0.0.1', 'left')
        self.sut.connect('10.0.0.2')
        result = self.sut.set_assignment('input-1', '10.0.0.1')
        assert_that(result, is_(CommandResult(True, "input-1 assigned to left")))
        assert_that(self.router.route_for('input-1'), is_(Route(A, ChannelKind.input, 1)))

        result = self.sut.set_assignment('input-1', '')
        assert_that(result.message, is_("input-1 assigned to the default amplifier"))
        assert_that(self.router.route_for('input-1'), is_(Route(B, ChannelKind.input, 1)))

    def test_set_assignment_unsaved(self):
        result = self.sut.set_assignment('input-1', '10.0.0.9')
        assert_that(result.success, is_(False))
        assert_that(self.router.table.address(DisplayChannel('input', 1)), is_(None))

    def test_set_assignment_invalid_channel(self):
        assert_that(self.sut.set_assignment('input-9', None).success, is_(False))

    def test_set_channel_number(self):
        assert_that(self.sut.set_channel_number('output-2', '3').message, is_("output-2 reads channel 3"))
        assert_that(self.router.table.channel_number(DisplayChannel('output', 2)), is_(3))
        assert_that(self.sut.set_channel_number('output-2', None).message, is_("output-2 reads its own channel"))
        assert_that(self.sut.set_channel_number('output-2', 7).success, is_(False))
        assert_that(self.sut.set_channel_number('output-2', 'x').success, is_(False))

    def test_bulk_assign(self):
        assert_that(self.sut.bulk_assign('10.0.0.1').success, is_(False))
        self.sut.add_device('10.0.0.1', 'left')
        assert_that(self.sut.bulk_assign('10.0.0.1'), is_(CommandResult(True, "All channels assigned to left")))
        assert_that(self.router.table.addresses(), is_({A}))

    def test_set_mute(self):
        self.sut.connect('10.0.0.1')
        assert_that(self.sut.set_mute('output', 2, True), is_(CommandResult(True, "Muted output 2")))
        assert_that(self.sut.set_mute('all-output', None, False), is_(CommandResult(True, "Unmuted all-output")))
        assert_that([c[0][0] for c in self.devices[A].session.send.call_args_list], contains_exactly(
            WriteMuteCommand(ChannelKind.output, 2, True), WriteMuteCommand(ChannelKind.output, 0, False)))

    def test_set_mute_failures(self):
        assert_that(self.sut.set_mute('input', 1, True).success, is_(False))
        self.sut.connect('10.0.0.1')
        assert_that(self.sut.set_mute('input', 5, True).success, is_(False))
        assert_that(self.sut.set_mute('bus', 1, True).success, is_(False))
        self.devices[A].session.connected = False
        assert_that(self.sut.set_mute('input', 1, True).success, is_(False))

    def test_devices(self):
        self.sut.add_device('10.0.0.1', 'left')
        assert_that(self.sut.add_device('10.0.0.1').success, is_(False))
        assert_that(self.sut.add_device('nope').success, is_(False))
        result = self.sut.devices()
        assert_that(result.value, has_length(1))
        assert_that(result.message, is_("1 saved devices"))

    def test_remove_default_device_disconnects(self):
        self.sut.add_device('10.0.0.1')
        self.sut.switch('10.0.0.1')
        assert_that(self.sut.remove_device('10.0.0.1').success, is_(True))
        assert_that(self.router.monitoring, is_(False))
        assert_that(self.sut.remove_device('10.0.0.1').success, is_(False))

    def test_status(self):
        assert_that(self.sut.status(), is_(CommandResult(True, "Not connected", StatusEvent(False, None))))
        self.sut.add_device('10.0.0.1', 'left')
        self.sut.connect('10.0.0.1')
        assert_that(self.sut.status().message, is_("Connected to left"))
        self.devices[A].session.connected = False
        assert_that(self.sut.status().message, is_("Connecting to left"))

    def test_changes_are_saved(self):
        self.sut.add_device('10.0.0.1', 'left')
        self.sut.set_assignment('output-4', '10.0.0.1')
        self.sut.set_channel_number('output-4', 1)

        restored = ControlApi.load(self.store, device_factory=self.create_device, log=Mock())
        assert_that(restored.router.table, is_(self.router.table))
        assert_that(restored.registry.devices(), is_(self.sut.registry.devices()))

    def test_save_failure_is_reported(self):
        self.store.path = os.path.join(self.dir, 'missing', 'amplink.json')
        result = self.sut.add_device('10.0.0.1')
        assert_that(result.success, is_(False))
        assert_that(result.message, starts_with("Added 10.0.0.1:8234, but saving failed"))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
