"""
tests/test_fixedpoint.py

Dec must give the same answer on every node: parsing is strict, floats
are refused, and every division and integer conversion truncates toward
zero.
"""

import pytest

from usdm.core.fixedpoint import Dec


class TestParsing:

    def test_integer_and_fraction(self):
        assert Dec.from_str("10") == Dec.from_int(10)
        assert str(Dec.from_str("0.9")) == "0.900000000000000000"
        assert str(Dec.from_str("-1.25")) == "-1.250000000000000000"

    def test_smallest_unit(self):
        assert Dec.from_str("0.000000000000000001").raw == 1

    def test_too_many_fractional_digits_rejected(self):
        with pytest.raises(ValueError):
            Dec.from_str("1.0000000000000000001")

    @pytest.mark.parametrize("bad", ["", "abc", "1e5", "1.", ".5", "1,5", "--1"])
    def test_malformed_rejected(self, bad):
        with pytest.raises(ValueError):
            Dec.from_str(bad)

    def test_float_refused(self):
        with pytest.raises(TypeError):
            Dec.coerce(0.5)

    def test_coerce_accepts_int_str_dec(self):
        d = Dec.from_str("2")
        assert Dec.coerce(2) == d
        assert Dec.coerce("2") == d
        assert Dec.coerce(d) is d

    def test_repr_round_trips_through_str(self):
        d = Dec.from_str("3.14")
        assert repr(d) == "Dec('3.140000000000000000')"
        assert Dec.from_str(str(d)) == d


class TestArithmetic:

    def test_add_sub(self):
        assert Dec.from_str("1.5") + Dec.from_str("2.25") == Dec.from_str("3.75")
        assert Dec.from_str("1") - 3 == Dec.from_int(-2)

    def test_mul_truncates(self):
        third = Dec.from_int(1) / Dec.from_int(3)
        assert str(third * Dec.from_int(3)) == "0.999999999999999999"

    def test_div_truncates_toward_zero(self):
        assert str(Dec.from_int(1) / Dec.from_int(3)) == "0.333333333333333333"
        assert str(Dec.from_int(-1) / Dec.from_int(3)) == "-0.333333333333333333"
        assert str(Dec.from_int(2) / Dec.from_int(3)) == "0.666666666666666666"

    def test_div_by_int(self):
        assert Dec.from_int(7) / 2 == Dec.from_str("3.5")

    def test_div_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            Dec.one() / Dec.zero()

    def test_truncate_int(self):
        assert Dec.from_str("2.999").truncate_int() == 2
        assert Dec.from_str("-2.999").truncate_int() == -2
        assert Dec.from_str("0.5").truncate_int() == 0

    def test_ordering(self):
        assert Dec.from_str("0.9") < Dec.one()
        assert sorted([Dec.from_int(3), Dec.from_int(1), Dec.from_int(2)]) == [
            Dec.from_int(1), Dec.from_int(2), Dec.from_int(3),
        ]

    def test_predicates(self):
        assert Dec.zero().is_zero()
        assert Dec.one().is_positive()
        assert (-Dec.one()).is_negative()
