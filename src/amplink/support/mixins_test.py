import unittest

from hamcrest import assert_that, is_, is_not, equal_to

from amplink.support.mixins import CommonEqualityMixin, StringerMixin, ValueObjectMixin, quote


class Value(ValueObjectMixin, StringerMixin):
    def __init__(self, a, b):
        self.a = a
        self.b = b


class Other(CommonEqualityMixin):
    def __init__(self, a):
        self.a = a


class MixinsTest(unittest.TestCase):

    def test_quote(self):
        assert_that(quote(None), is_("None"))
        assert_that(quote(12), is_("'12'"))

    def test_equality(self):
        assert_that(Other(1), is_(equal_to(Other(1))))
        assert_that(Other(1), is_not(equal_to(Other(2))))
        assert_that(Other(1) != Other(2), is_(True))

    def test_not_equal_to_other_types(self):
        assert_that(Other(1) == 1, is_(False))
        assert_that(Value(1, 2) == Other(1), is_(False))

    def test_value_objects_hash_by_value(self):
        lookup = {Value(1, 'x'): 'found'}
        assert_that(lookup.get(Value(1, 'x')), is_('found'))
        assert_that(len({Value(1, 2), Value(1, 2), Value(2, 1)}), is_(2))

    def test_str_lists_sorted_values(self):
        assert_that(str(Value(1, None)), is_("Value:{'a': '1', 'b': None}"))
