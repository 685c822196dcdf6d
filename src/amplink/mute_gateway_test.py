import unittest
from unittest.mock import Mock, patch

from hamcrest import assert_that, is_, calling, raises

from amplink import settings
from amplink.address import DeviceAddress
from amplink.channels import DisplayChannel, Route
from amplink.connector.base import ConnectionNotConnectedError
from amplink.mute_gateway import MuteGateway
from amplink.protocol.frames import ChannelKind, WriteMuteCommand, InvalidChannelError

A = DeviceAddress('10.0.0.1')
B = DeviceAddress('10.0.0.2')


class MuteGatewayTest(unittest.TestCase):

    def setUp(self):
        self.sessions = {A: Mock(connected=True), B: Mock(connected=True)}
        self.routes = {
            DisplayChannel('input', 1): Route(A, ChannelKind.input, 1),
            DisplayChannel('output', 2): Route(B, ChannelKind.output, 4),
        }
        self.router = Mock()
        self.router.default_address = B
        self.router.route_for.side_effect = self.routes.get
        self.router.session_for.side_effect = self.sessions.get
        self.sut = MuteGateway(self.router, log=Mock())

    def test_mute_input(self):
        result = self.sut.set_mute('input', 1, True)
        self.sessions[A].send.assert_called_once_with(WriteMuteCommand(ChannelKind.input, 1, True))
        assert_that(result, is_(self.sessions[A].send.return_value))
        self.sessions[B].send.assert_not_called()

    def test_unmute_uses_channel_number(self):
        self.sut.set_mute('output', 2, False)
        self.sessions[B].send.assert_called_once_with(WriteMuteCommand(ChannelKind.output, 4, False))

    def test_configured_device_id(self):
        with patch.object(settings, 'device_id', 3):
            self.sut.set_mute('input', 1, True)
        self.sessions[A].send.assert_called_once_with(WriteMuteCommand(ChannelKind.input, 1, True, device_id=3))

    def test_all_output_goes_to_default(self):
        self.sut.set_mute('all-output', None, True)
        self.sessions[B].send.assert_called_once_with(WriteMuteCommand(ChannelKind.output, 0, True))

    def test_all_output_ignores_channel_id(self):
        self.sut.set_mute('all-output', 3, False)
        self.sessions[B].send.assert_called_once_with(WriteMuteCommand(ChannelKind.output, 0, False))

    def test_all_output_without_default(self):
        self.router.default_address = None
        assert_that(calling(self.sut.set_mute).with_args('all-output', None, True),
                    raises(ConnectionNotConnectedError))

    def test_invalid_kind(self):
        assert_that(calling(self.sut.set_mute).with_args('bus', 1, True), raises(InvalidChannelError))

    def test_invalid_channel(self):
        for channel in (0, 5, None, True, '1'):
            assert_that(calling(self.sut.set_mute).with_args('input', channel, True), raises(InvalidChannelError))
        self.sessions[A].send.assert_not_called()

    def test_unrouted_channel(self):
        assert_that(calling(self.sut.set_mute).with_args('input', 2, True), raises(ConnectionNotConnectedError))

    def test_disconnected_session(self):
        self.sessions[A].connected = False
        assert_that(calling(self.sut.set_mute).with_args('input', 1, True), raises(ConnectionNotConnectedError))
        self.sessions[A].send.assert_not_called()

    def test_missing_session(self):
        del self.sessions[A]
        assert_that(calling(self.sut.set_mute).with_args('input', 1, True), raises(ConnectionNotConnectedError))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
