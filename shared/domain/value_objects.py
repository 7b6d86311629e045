"""
Common Value Objects

Value objects used across multiple domains:
- Percent: Commission percentage with two decimal places
- DateRange: Represents an inclusive range of dates (payout periods)
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')


def quantize_money(value) -> Decimal:
    """Round a monetary value to cents (half up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Percent:
    """Percentage between 0 and 100 stored with two decimal places."""
    value: Decimal

    def __post_init__(self):
        if isinstance(self.value, float):
            raise TypeError("Percent cannot be built from float, use Decimal or str")
        object.__setattr__(self, 'value', quantize_money(self.value))
        if not Decimal('0') <= self.value <= Decimal('100'):
            raise ValueError(f"Percent must be between 0 and 100, got {self.value}")

    def __str__(self):
        return f"{self.value}%"


@dataclass(frozen=True)
class DateRange:
    """
    Date range value object

    Represents a range from start_date to end_date, both inclusive.
    Used for payout periods.
    """
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"Start date ({self.start_date}) must not be after end date ({self.end_date})")

    def overlaps_with(self, other: 'DateRange') -> bool:
        """
        Check if this range overlaps with another

        Both ends are inclusive, so ranges sharing a boundary day overlap.

        Examples:
            - DateRange(1, 7) overlaps with DateRange(7, 14) -> True
            - DateRange(1, 7) overlaps with DateRange(8, 14) -> False
        """
        if not isinstance(other, DateRange):
            raise TypeError("Can only check overlap with another DateRange")
        return self.start_date <= other.end_date and self.end_date >= other.start_date

    def contains(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def __len__(self) -> int:
        """Number of days covered by the range"""
        return (self.end_date - self.start_date).days + 1

    def __str__(self):
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"

    def __repr__(self):
        return f"DateRange({self.start_date}, {self.end_date})"
