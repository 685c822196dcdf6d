import logging

from amplink import settings
from amplink.channels import DisplayChannel
from amplink.connector.base import ConnectionNotConnectedError
from amplink.protocol.frames import ChannelKind, CHANNELS, MASTER_CHANNEL, WriteMuteCommand, InvalidChannelError

logger = logging.getLogger(__name__)


class MuteGateway:
    """
    Sends mute commands to the amplifier that supplies a display channel, resolved the same way
    the router resolves samples. The master mute is sent to the default amplifier.

    :param router: provides route_for(), session_for() and default_address
    """

    def __init__(self, router, log=logger):
        self.router = router
        self.logger = log

    def set_mute(self, kind, channel_id, mute):
        """
        Mutes or unmutes a display channel, or all outputs.
        :param kind: 'input', 'output' or 'all-output'
        :param channel_id: the display channel index 1-4. Ignored for all-output.
        :return: the future response of the mute command. Callers need not wait for it.
        :raises InvalidChannelError: the kind or channel is not valid
        :raises ConnectionNotConnectedError: no connected amplifier supplies the channel
        """
        if kind == ChannelKind.all_output:
            address, target_kind, channel = self.router.default_address, ChannelKind.output, MASTER_CHANNEL
            if address is None:
                raise ConnectionNotConnectedError("no amplifier is connected")
        elif kind in (ChannelKind.input, ChannelKind.output):
            if isinstance(channel_id, bool) or channel_id not in CHANNELS:
                raise InvalidChannelError("invalid %s channel %r" % (kind, channel_id))
            display = DisplayChannel(kind, channel_id)
            route = self.router.route_for(display)
            if route is None:
                raise ConnectionNotConnectedError("no amplifier is assigned to %s" % display)
            address, target_kind, channel = route.address, route.kind, route.channel
        else:
            raise InvalidChannelError("invalid channel type %r" % (kind,))

        session = self.router.session_for(address)
        if session is None or not session.connected:
            raise ConnectionNotConnectedError("%s is not connected" % address)
        command = WriteMuteCommand(target_kind, channel, mute, settings.device_id)
        self.logger.debug("sending %s to %s" % (command, address))
        return session.send(command)
