import threading
import time
import unittest
from concurrent.futures import Future
from unittest.mock import Mock, patch

import timeout_decorator
from hamcrest import assert_that, is_, contains_exactly, has_length, instance_of, has_properties, empty

from amplink import settings
from amplink.address import DeviceAddress
from amplink.connector.base import ConnectionNotConnectedError
from amplink.fake_amplifier import FakeAmplifier
from amplink.poll_cycle import PollCycle, poll_queries, ChannelSample, MuteSample
from amplink.protocol.asynchronous import ResponseTimeoutError
from amplink.protocol.frames import ChannelKind, ReadGainCommand, ReadMuteCommand, GainResponse, MuteResponse
from amplink.protocol.io_test import debug_timeout
from amplink.session import FrameReceivedEvent, SessionConnectedEvent, SessionDisconnectedEvent
from amplink.session_test import make_session


class SampleRecorder:

    def __init__(self):
        self.samples = []
        self.condition = threading.Condition()

    def __call__(self, sample):
        with self.condition:
            self.samples.append(sample)
            self.condition.notify_all()

    def wait_for(self, count, timeout=3):
        with self.condition:
            return self.condition.wait_for(lambda: len(self.samples) >= count, timeout)


class PollQueriesTest(unittest.TestCase):

    def test_rotation_order(self):
        queries = poll_queries()
        assert_that(queries, has_length(17))
        assert_that(queries[:8], contains_exactly(
            *[ReadGainCommand(ChannelKind.input, c) for c in range(1, 5)] +
            [ReadGainCommand(ChannelKind.output, c) for c in range(1, 5)]))
        assert_that(queries[8:], contains_exactly(
            *[ReadMuteCommand(ChannelKind.input, c) for c in range(1, 5)] +
            [ReadMuteCommand(ChannelKind.output, c) for c in range(1, 5)] +
            [ReadMuteCommand(ChannelKind.output, 0)]))

    def test_device_id(self):
        assert_that({q.device_id for q in poll_queries(7)}, is_({7}))
        with patch.object(settings, 'device_id', 3):
            assert_that({q.device_id for q in poll_queries()}, is_({3}))


class PollCycleDeduplicationTest(unittest.TestCase):

    def setUp(self):
        self.session = Mock()
        self.session.address = DeviceAddress('10.0.0.1')
        self.sut = PollCycle(self.session, 0.01, log=Mock())
        self.recorder = SampleRecorder()
        self.sut.samples.add(self.recorder)

    def receive(self, frame):
        self.sut(FrameReceivedEvent(self.session, frame))

    def test_first_value_is_published(self):
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        assert_that(self.recorder.samples, contains_exactly(instance_of(ChannelSample)))
        assert_that(self.recorder.samples[0], has_properties(kind=ChannelKind.input, channel=2, value_db=-12.0))

    def test_identical_value_published_once(self):
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        assert_that(self.recorder.samples, has_length(1))

    def test_changed_value_published(self):
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        self.receive(GainResponse(ChannelKind.input, 2, -121))
        assert_that([s.value_db for s in self.recorder.samples], is_([-12.0, -12.1]))

    def test_channels_tracked_separately(self):
        self.receive(GainResponse(ChannelKind.input, 2, 0))
        self.receive(GainResponse(ChannelKind.output, 2, 0))
        self.receive(GainResponse(ChannelKind.input, 3, 0))
        assert_that(self.recorder.samples, has_length(3))

    def test_gain_and_mute_tracked_separately(self):
        self.receive(GainResponse(ChannelKind.output, 1, 0))
        self.receive(MuteResponse(ChannelKind.output, 1, 0))
        self.receive(MuteResponse(ChannelKind.output, 1, 0))
        assert_that(self.recorder.samples, contains_exactly(instance_of(ChannelSample), instance_of(MuteSample)))
        assert_that(self.recorder.samples[1], has_properties(kind=ChannelKind.output, channel=1, muted=False))

    def test_master_mute_sample(self):
        self.receive(MuteResponse.for_state(ChannelKind.output, 0, True))
        assert_that(self.recorder.samples[0], has_properties(channel=0, muted=True))

    def test_reconnect_clears_cache(self):
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        self.sut(SessionDisconnectedEvent(self.session))
        self.sut(SessionConnectedEvent(self.session))
        self.receive(GainResponse(ChannelKind.input, 2, -120))
        assert_that(self.recorder.samples, has_length(2))

    def test_connect_clears_cache(self):
        self.receive(MuteResponse(ChannelKind.input, 1, 1))
        self.sut(SessionConnectedEvent(self.session))
        self.receive(MuteResponse(ChannelKind.input, 1, 1))
        assert_that(self.recorder.samples, has_length(2))


class PollCycleTickTest(unittest.TestCase):

    def setUp(self):
        self.session = Mock()
        self.session.address = DeviceAddress('10.0.0.1')
        self.session.response_timeout = 0.01
        self.sut = PollCycle(self.session, 0.01, log=Mock())

    def test_tick_sends_next_query(self):
        future = Future()
        future.set_result(GainResponse(ChannelKind.input, 1, 0))
        self.session.send.return_value = future
        self.sut.tick()
        self.sut.tick()
        assert_that([c[0][0] for c in self.session.send.call_args_list],
                    is_([ReadGainCommand(ChannelKind.input, 1), ReadGainCommand(ChannelKind.input, 2)]))
        assert_that(self.sut.failures, is_(0))

    def test_rotation_wraps(self):
        future = Future()
        future.set_result(None)
        self.session.send.return_value = future
        for _ in range(18):
            self.sut.tick()
        assert_that(self.session.send.call_args[0][0], is_(ReadGainCommand(ChannelKind.input, 1)))

    def test_timeout_is_counted_and_skipped(self):
        future = Future()
        future.set_exception(ResponseTimeoutError("late"))
        self.session.send.return_value = future
        self.sut.tick()
        assert_that(self.sut.failures, is_(1))
        assert_that(self.sut.position, is_(1))

    def test_unanswered_future_is_counted(self):
        self.session.send.return_value = Future()
        self.sut.tick()
        assert_that(self.sut.failures, is_(1))

    def test_not_connected_is_counted(self):
        self.session.send.side_effect = ConnectionNotConnectedError("down")
        self.sut.tick()
        assert_that(self.sut.failures, is_(1))
        assert_that(self.sut.position, is_(1))

    def test_no_query_while_disconnected(self):
        self.session.connected = False
        self.sut.loop()
        self.session.send.assert_not_called()

    def test_loop_is_paced_by_interval(self):
        future = Future()
        future.set_result(None)
        self.session.send.return_value = future
        self.session.connected = True
        self.sut.interval = 0.05
        start = time.monotonic()
        self.sut.loop()
        self.sut.loop()
        assert_that(time.monotonic() - start >= 0.09, is_(True))


class PollCycleAmplifierTest(unittest.TestCase):
    """ polls a fake amplifier. """

    def setUp(self):
        self.amp = FakeAmplifier(log=Mock()).start()
        self.session = make_session(self.amp.address)
        self.sut = PollCycle(self.session, 0.005, log=Mock())
        self.recorder = SampleRecorder()
        self.sut.samples.add(self.recorder)

    def tearDown(self):
        self.session.close()
        self.sut.close()
        self.amp.stop()

    @timeout_decorator.timeout(debug_timeout(10))
    def test_polls_every_channel_in_order(self):
        self.session.open()
        self.sut.open()
        commands = self.amp.wait_for_commands(17)
        assert_that(commands[:17], is_(poll_queries()))

    @timeout_decorator.timeout(debug_timeout(10))
    def test_publishes_each_value_once(self):
        self.amp.set_gain(ChannelKind.output, 4, -3.5)
        self.session.open()
        self.sut.open()
        assert_that(self.recorder.wait_for(17), is_(True))
        self.amp.wait_for_commands(17 * 2)
        assert_that(self.recorder.samples, has_length(17))
        gains = [s for s in self.recorder.samples if isinstance(s, ChannelSample)]
        assert_that(gains[-1], has_properties(kind=ChannelKind.output, channel=4, value_db=-3.5))

        self.amp.set_gain(ChannelKind.input, 1, -1.0)
        assert_that(self.recorder.wait_for(18), is_(True))
        assert_that(self.recorder.samples[17], has_properties(kind=ChannelKind.input, channel=1, value_db=-1.0))

    @timeout_decorator.timeout(debug_timeout(10))
    def test_republishes_after_reconnect(self):
        self.session.open()
        self.sut.open()
        assert_that(self.recorder.wait_for(17), is_(True))
        self.amp.drop_connections()
        assert_that(self.recorder.wait_for(34), is_(True))

    @timeout_decorator.timeout(debug_timeout(10))
    def test_silent_channel_does_not_stall_the_cycle(self):
        self.amp.silent.add(ReadGainCommand(ChannelKind.input, 1).response_key)
        self.session.open()
        self.sut.open()
        assert_that(self.recorder.wait_for(16), is_(True))
        assert_that(self.sut.failures >= 1, is_(True))
        assert_that([s for s in self.recorder.samples if s.channel == 1 and s.kind == ChannelKind.input
                     and isinstance(s, ChannelSample)], is_(empty()))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
