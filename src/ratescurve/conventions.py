"""
Day count, compounding and business day conventions.

Supported Day Counts:
- ACT/360: Actual days / 360 (money markets, OIS)
- ACT/365: Actual days / 365 (curve time axis)
- ACT/ACT: ISDA actual/actual, split at calendar year boundaries
- 30/360: US 30/360 bond basis (fixed swap legs)

Business Day Conventions:
- Modified Following: next business day unless that crosses a month end
- Following / Preceding / Unadjusted
"""

from datetime import date, timedelta
from enum import Enum
from typing import Optional
import calendar


class DayCount(Enum):
    """Day count convention enumeration."""
    ACT_360 = "ACT/360"
    ACT_365 = "ACT/365"
    ACT_ACT = "ACT/ACT"
    THIRTY_360 = "30/360"

    @classmethod
    def from_string(cls, s: str) -> "DayCount":
        """Parse day count from string representation ("ACT/360", "act360", ...)."""
        key = s.upper().replace(" ", "").replace("/", "")
        for member in cls:
            if member.value.replace("/", "") == key:
                return member
        if key == "ACT365F":
            return cls.ACT_365
        raise ValueError(f"Unknown day count convention: {s}")


class BusinessDayConvention(Enum):
    """Business day adjustment convention."""
    MODIFIED_FOLLOWING = "ModifiedFollowing"
    FOLLOWING = "Following"
    PRECEDING = "Preceding"
    UNADJUSTED = "Unadjusted"


class CompoundingConvention(Enum):
    """Interest rate compounding convention."""
    CONTINUOUS = "Continuous"
    ANNUAL = "Annual"
    SEMI_ANNUAL = "SemiAnnual"
    QUARTERLY = "Quarterly"
    SIMPLE = "Simple"

    @property
    def periods_per_year(self) -> Optional[int]:
        """Compounding periods per year, None for continuous and simple."""
        return {
            CompoundingConvention.ANNUAL: 1,
            CompoundingConvention.SEMI_ANNUAL: 2,
            CompoundingConvention.QUARTERLY: 4,
        }.get(self)


def year_fraction(start: date, end: date, day_count: DayCount) -> float:
    """
    Calculate year fraction between two dates using a day count convention.

    Args:
        start: Start date
        end: End date
        day_count: Day count convention

    Returns:
        Year fraction as float (0.0 when end is not after start)
    """
    if start >= end:
        return 0.0

    actual_days = (end - start).days

    if day_count == DayCount.ACT_360:
        return actual_days / 360.0

    if day_count == DayCount.ACT_365:
        return actual_days / 365.0

    if day_count == DayCount.ACT_ACT:
        total = 0.0
        current = start
        while current < end:
            year_end = date(current.year + 1, 1, 1)
            period_end = min(year_end, end)
            days_in_year = 366 if calendar.isleap(current.year) else 365
            total += (period_end - current).days / days_in_year
            current = period_end
        return total

    if day_count == DayCount.THIRTY_360:
        d1 = min(start.day, 30)
        d2 = end.day
        if d2 == 31 and d1 == 30:
            d2 = 30
        return (
            360 * (end.year - start.year)
            + 30 * (end.month - start.month)
            + (d2 - d1)
        ) / 360.0

    raise ValueError(f"Unknown day count: {day_count}")


def is_business_day(d: date, holidays: Optional[set] = None) -> bool:
    """
    Check if a date is a business day.

    Weekends are never business days; ``holidays`` adds extra closures.
    """
    if d.weekday() >= 5:
        return False
    return not (holidays and d in holidays)


def adjust_business_day(
    d: date,
    convention: BusinessDayConvention,
    holidays: Optional[set] = None
) -> date:
    """
    Adjust a date according to a business day convention.

    Args:
        d: Date to adjust
        convention: Business day adjustment rule
        holidays: Optional set of holiday dates

    Returns:
        Adjusted date
    """
    if convention == BusinessDayConvention.UNADJUSTED or is_business_day(d, holidays):
        return d

    step = timedelta(days=-1 if convention == BusinessDayConvention.PRECEDING else 1)
    adjusted = d
    while not is_business_day(adjusted, holidays):
        adjusted += step

    if convention == BusinessDayConvention.MODIFIED_FOLLOWING and adjusted.month != d.month:
        adjusted = d
        while not is_business_day(adjusted, holidays):
            adjusted -= timedelta(days=1)

    return adjusted


__all__ = [
    "DayCount",
    "BusinessDayConvention",
    "CompoundingConvention",
    "year_fraction",
    "is_business_day",
    "adjust_business_day",
]
