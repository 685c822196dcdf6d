"""
Events published by the router to the real-time broadcast layer.

Listeners receive events through the BroadcastListener interface. Add a listener to the router,
or call event.apply(listener) to dispatch a single event.
"""
from abc import abstractmethod

from amplink.support.mixins import StringerMixin, CommonEqualityMixin


class BroadcastListener:
    """
    Receives the status of the default amplifier and the samples for display channels.
    Each method is a no-op, so listeners implement only what they need.
    Calling a listener with an event dispatches the event to it.
    """

    def __call__(self, event: 'BroadcastEvent'):
        return event.apply(self)

    def on_status(self, connected, address):
        """
        notifies whether the default amplifier is connected.
        :param address: the DeviceAddress of the default amplifier, or None when there is no default.
        """

    def on_channel_sample(self, display_channel, value_db):
        """
        notifies a new gain level for a display channel.
        """

    def on_mute_sample(self, display_channel, muted):
        """
        notifies a new mute state for a display channel. The master mute is reported on ALL_OUTPUT.
        """

    def on_error(self, message):
        """
        notifies a problem that the user may want to know about.
        """


class BroadcastEvent(StringerMixin, CommonEqualityMixin):

    @abstractmethod
    def apply(self, listener: BroadcastListener):
        raise NotImplementedError()


class StatusEvent(BroadcastEvent):
    def __init__(self, connected, address):
        self.connected = connected
        self.address = address

    def apply(self, listener: BroadcastListener):
        return listener.on_status(self.connected, self.address)


class ChannelSampleEvent(BroadcastEvent):
    def __init__(self, display_channel, value_db):
        self.display_channel = display_channel
        self.value_db = value_db

    def apply(self, listener: BroadcastListener):
        return listener.on_channel_sample(self.display_channel, self.value_db)


class MuteSampleEvent(BroadcastEvent):
    def __init__(self, display_channel, muted):
        self.display_channel = display_channel
        self.muted = muted

    def apply(self, listener: BroadcastListener):
        return listener.on_mute_sample(self.display_channel, self.muted)


class RouterErrorEvent(BroadcastEvent):
    def __init__(self, message):
        self.message = message

    def apply(self, listener: BroadcastListener):
        return listener.on_error(self.message)
