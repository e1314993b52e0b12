"""
Date utilities for curve construction.

Provides:
- Tenor parsing and tenor arithmetic
- Tenor: a time point relative to a valuation date
- Schedule generation for swap legs
- resolve_time: tenors and year fractions to curve time
"""

from dataclasses import dataclass
from datetime import date, timedelta
from functools import total_ordering
from typing import List, Optional, Tuple, Union
import re

from .conventions import (
    BusinessDayConvention,
    DayCount,
    adjust_business_day,
    is_business_day,
    year_fraction
)
from .errors import OutOfDomainError


class DateUtils:
    """Utility class for date manipulation in rates contexts."""

    # number + unit (D/W/M/Y)
    TENOR_PATTERN = re.compile(r'^(\d+)([DWMY])$', re.IGNORECASE)

    @staticmethod
    def parse_tenor(tenor: str) -> Tuple[int, str]:
        """
        Parse a tenor string into (amount, unit).

        Args:
            tenor: Tenor string like "1D", "3M", "2Y"

        Returns:
            Tuple of (amount, unit) where unit is D/W/M/Y

        Raises:
            ValueError: If tenor format is invalid
        """
        match = DateUtils.TENOR_PATTERN.match(tenor.upper().strip())
        if not match:
            raise ValueError(f"Invalid tenor format: {tenor}. Expected format like '3M', '2Y'")
        return int(match.group(1)), match.group(2).upper()

    @staticmethod
    def add_tenor(start: date, tenor: str, holidays: Optional[set] = None) -> date:
        """
        Add a tenor to a date.

        Days are business days; weeks, months and years are calendar
        periods with the day of month clipped to the month end.
        """
        amount, unit = DateUtils.parse_tenor(tenor)

        if unit == 'D':
            result = start
            added = 0
            while added < amount:
                result += timedelta(days=1)
                if is_business_day(result, holidays):
                    added += 1
            return result

        if unit == 'W':
            return start + timedelta(weeks=amount)

        months = amount if unit == 'M' else 12 * amount
        return _add_months(start, months)

    @staticmethod
    def tenor_to_years(tenor: str) -> float:
        """Approximate year fraction of a tenor without a calendar."""
        amount, unit = DateUtils.parse_tenor(tenor)
        return {
            'D': amount / 365.0,
            'W': amount * 7 / 365.0,
            'M': amount / 12.0,
            'Y': float(amount),
        }[unit]

    @staticmethod
    def generate_schedule(
        start: date,
        end: date,
        frequency: int,
        convention: BusinessDayConvention = BusinessDayConvention.UNADJUSTED,
        holidays: Optional[set] = None,
    ) -> List[date]:
        """
        Generate payment dates between start and end, rolling back from end.

        A short first period absorbs any stub.

        Args:
            start: Accrual start
            end: Final payment date
            frequency: Payments per year (1, 2, 4 or 12)
            convention: Business day adjustment applied to every date
            holidays: Holiday calendar

        Returns:
            Payment dates after ``start``, ascending, ending at ``end``
        """
        if frequency <= 0 or 12 % frequency != 0:
            raise ValueError(f"Unsupported payment frequency: {frequency}")

        step = 12 // frequency
        dates = [end]
        periods = 1
        while True:
            previous = _add_months(end, -step * periods)
            if previous <= start:
                break
            dates.insert(0, previous)
            periods += 1

        return [adjust_business_day(d, convention, holidays) for d in dates]


@total_ordering
@dataclass(frozen=True)
class Tenor:
    """
    A time point expressed as a period after a valuation date.

    Attributes:
        period: Tenor code such as "1D", "3M", "10Y" (D counts business days)
        valuation_date: Date the period is measured from
        day_count: Day count used to turn the period into curve time

    Tenors are totally ordered by their year fraction, ties broken by
    the period code, then the valuation date and day count, so the order
    agrees with equality.
    """
    period: str
    valuation_date: date
    day_count: DayCount = DayCount.ACT_365

    def __post_init__(self):
        amount, unit = DateUtils.parse_tenor(self.period)
        object.__setattr__(self, "period", f"{amount}{unit}")

    @property
    def maturity_date(self) -> date:
        """Calendar date the tenor points to."""
        return DateUtils.add_tenor(self.valuation_date, self.period)

    @property
    def years(self) -> float:
        """Year fraction from valuation date to maturity."""
        return year_fraction(self.valuation_date, self.maturity_date, self.day_count)

    def sort_key(self) -> Tuple[float, str, date, str]:
        return self.years, self.period, self.valuation_date, self.day_count.value

    def __lt__(self, other: "Tenor") -> bool:
        if not isinstance(other, Tenor):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return self.period


TimeLike = Union[Tenor, float, int]


def resolve_time(t: TimeLike) -> float:
    """
    Convert a tenor or a year fraction into curve time.

    Raises:
        OutOfDomainError: If the time is negative
    """
    value = t.years if isinstance(t, Tenor) else float(t)
    if value < 0.0:
        raise OutOfDomainError(value, 0.0)
    return value


def _add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clipping the day to the month end."""
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    return date(year, month, min(start.day, _days_in_month(year, month)))


def _days_in_month(year: int, month: int) -> int:
    """Return number of days in a month."""
    if month == 2:
        if (year % 4 == 0 and year % 100 != 0) or (year % 400 == 0):
            return 29
        return 28
    if month in (4, 6, 9, 11):
        return 30
    return 31


__all__ = [
    "DateUtils",
    "Tenor",
    "TimeLike",
    "resolve_time",
]
