import unittest

from hamcrest import assert_that, is_, calling, raises, has_length, is_not

from amplink.address import DeviceAddress, InvalidAddressError
from amplink.channels import DisplayChannel, DISPLAY_CHANNELS, AssignmentTable, Route
from amplink.protocol.frames import ChannelKind, InvalidChannelError

A = DeviceAddress('10.0.0.1')
B = DeviceAddress('10.0.0.2')


class DisplayChannelTest(unittest.TestCase):

    def test_eight_channels(self):
        assert_that(DISPLAY_CHANNELS, has_length(8))
        assert_that(DISPLAY_CHANNELS[0], is_(DisplayChannel('input', 1)))
        assert_that(DISPLAY_CHANNELS[-1], is_(DisplayChannel('output', 4)))

    def test_parse(self):
        assert_that(DisplayChannel.parse('output-3'), is_(DisplayChannel(ChannelKind.output, 3)))
        assert_that(str(DisplayChannel('input', 2)), is_('input-2'))

    def test_parse_invalid(self):
        for text in ('input-0', 'input-5', 'bus-1', 'input', 'all-output-0', '', 'input--1'):
            assert_that(calling(DisplayChannel.parse).with_args(text), raises(InvalidChannelError))


class AssignmentTableTest(unittest.TestCase):

    def setUp(self):
        self.sut = AssignmentTable()

    def test_unassigned_channels_follow_default(self):
        routes = self.sut.routes(B)
        assert_that(routes, has_length(8))
        assert_that(routes[DisplayChannel('output', 2)], is_(Route(B, ChannelKind.output, 2)))

    def test_no_default_omits_unassigned(self):
        self.sut.assign('input-1', A)
        assert_that(self.sut.routes(), is_({DisplayChannel('input', 1): Route(A, ChannelKind.input, 1)}))

    def test_assign_and_clear(self):
        self.sut.assign('input-1', '10.0.0.1')
        assert_that(self.sut.address(DisplayChannel('input', 1)), is_(A))
        self.sut.assign('input-1', None)
        assert_that(self.sut.address(DisplayChannel('input', 1)), is_(None))

    def test_channel_number(self):
        self.sut.set_channel_number('output-1', 4)
        assert_that(self.sut.routes(B)[DisplayChannel('output', 1)], is_(Route(B, ChannelKind.output, 4)))
        self.sut.set_channel_number('output-1')
        assert_that(self.sut.routes(B)[DisplayChannel('output', 1)], is_(Route(B, ChannelKind.output, 1)))

    def test_invalid_channel_number(self):
        for number in (0, 5):
            assert_that(calling(self.sut.set_channel_number).with_args('output-1', number), raises(InvalidChannelError))

    def test_invalid_address(self):
        assert_that(calling(self.sut.assign).with_args('input-1', 'amp'), raises(InvalidAddressError))

    def test_assign_all(self):
        self.sut.set_channel_number('input-3', 1)
        self.sut.assign_all('10.0.0.1')
        assert_that(self.sut.addresses(), is_({A}))
        assert_that({r.address for r in self.sut.routes(B).values()}, is_({A}))
        self.sut.assign_all(None)
        assert_that(self.sut.addresses(), is_(set()))
        assert_that(self.sut.channel_number(DisplayChannel('input', 3)), is_(None))

    def test_dict_round_trip(self):
        self.sut.assign('input-1', A)
        self.sut.set_channel_number('output-2', 3)
        values = self.sut.to_dict()
        assert_that(values, is_({'ipAssignments': {'input-1': '10.0.0.1:8234'},
                                 'numberAssignments': {'output-2': 3}}))
        assert_that(AssignmentTable.from_dict(values), is_(self.sut))

    def test_from_dict_tolerates_missing_sections(self):
        assert_that(AssignmentTable.from_dict({}), is_(AssignmentTable()))
        assert_that(AssignmentTable.from_dict(None), is_(AssignmentTable()))

    def test_from_dict_empty_address_is_unassigned(self):
        table = AssignmentTable.from_dict({'ipAssignments': {'input-1': ''}})
        assert_that(table.addresses(), is_(set()))

    def test_from_dict_rejects_invalid_entries(self):
        assert_that(calling(AssignmentTable.from_dict).with_args({'numberAssignments': {'input-9': 1}}),
                    raises(InvalidChannelError))

    def test_equality(self):
        other = AssignmentTable()
        other.assign('input-1', A)
        assert_that(other, is_not(self.sut))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
