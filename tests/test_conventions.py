"""
Unit tests for conventions module.
"""

from datetime import date
import pytest

from ratescurve.conventions import (
    DayCount,
    BusinessDayConvention,
    CompoundingConvention,
    adjust_business_day,
    is_business_day,
    year_fraction,
)


class TestDayCount:
    """Tests for day count conventions."""

    def test_act_360(self):
        """91 actual days over 360."""
        yf = year_fraction(date(2024, 1, 15), date(2024, 4, 15), DayCount.ACT_360)
        assert abs(yf - 91 / 360) < 1e-12

    def test_act_365(self):
        """91 actual days over 365."""
        yf = year_fraction(date(2024, 1, 15), date(2024, 4, 15), DayCount.ACT_365)
        assert abs(yf - 91 / 365) < 1e-12

    def test_act_act_splits_at_year_end(self):
        """ACT/ACT weights each calendar year by its own length."""
        yf = year_fraction(date(2024, 1, 15), date(2025, 1, 15), DayCount.ACT_ACT)
        assert abs(yf - (352 / 366 + 14 / 365)) < 1e-12

    def test_thirty_360(self):
        """Three whole months are 90/360."""
        yf = year_fraction(date(2024, 1, 15), date(2024, 4, 15), DayCount.THIRTY_360)
        assert abs(yf - 90 / 360) < 1e-12

    def test_thirty_360_month_end(self):
        """31st is treated as the 30th."""
        yf = year_fraction(date(2024, 1, 31), date(2024, 3, 31), DayCount.THIRTY_360)
        assert abs(yf - 60 / 360) < 1e-12

    def test_year_fraction_same_date(self):
        """Same date gives zero."""
        d = date(2024, 1, 15)
        assert year_fraction(d, d, DayCount.ACT_360) == 0.0

    @pytest.mark.parametrize("text,expected", [
        ("ACT/360", DayCount.ACT_360),
        ("act360", DayCount.ACT_360),
        ("ACT/365", DayCount.ACT_365),
        ("ACT/ACT", DayCount.ACT_ACT),
        ("30/360", DayCount.THIRTY_360),
    ])
    def test_from_string(self, text, expected):
        """Day counts parse from common spellings."""
        assert DayCount.from_string(text) == expected

    def test_from_string_unknown(self):
        """Unknown day counts raise ValueError."""
        with pytest.raises(ValueError):
            DayCount.from_string("BUS/252")


class TestBusinessDays:
    """Tests for business day adjustment."""

    def test_weekend_is_not_business_day(self):
        """Saturday and Sunday are closed."""
        assert not is_business_day(date(2024, 6, 29))
        assert not is_business_day(date(2024, 6, 30))
        assert is_business_day(date(2024, 6, 28))

    def test_holidays(self):
        """Holidays are closed."""
        assert not is_business_day(date(2024, 7, 4), holidays={date(2024, 7, 4)})

    def test_following(self):
        """Following rolls forward, across month end if needed."""
        adjusted = adjust_business_day(date(2024, 6, 29), BusinessDayConvention.FOLLOWING)
        assert adjusted == date(2024, 7, 1)

    def test_modified_following_stays_in_month(self):
        """Modified following rolls back when following would change month."""
        adjusted = adjust_business_day(date(2024, 6, 29), BusinessDayConvention.MODIFIED_FOLLOWING)
        assert adjusted == date(2024, 6, 28)

    def test_preceding(self):
        """Preceding rolls back."""
        adjusted = adjust_business_day(date(2024, 6, 30), BusinessDayConvention.PRECEDING)
        assert adjusted == date(2024, 6, 28)

    def test_unadjusted(self):
        """Unadjusted leaves weekends alone."""
        d = date(2024, 6, 29)
        assert adjust_business_day(d, BusinessDayConvention.UNADJUSTED) == d


class TestCompounding:
    """Tests for compounding conventions."""

    def test_periods_per_year(self):
        """Discrete conventions know their frequency."""
        assert CompoundingConvention.ANNUAL.periods_per_year == 1
        assert CompoundingConvention.SEMI_ANNUAL.periods_per_year == 2
        assert CompoundingConvention.QUARTERLY.periods_per_year == 4
        assert CompoundingConvention.CONTINUOUS.periods_per_year is None
        assert CompoundingConvention.SIMPLE.periods_per_year is None
