'''
Bi-weekly earnings periods.

Periods are fixed 14-day windows anchored to a global epoch (a Monday), so
every tutor shares the same boundaries: [start, end) with end exclusive.
'''
import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

from ..common.config import settings

CENTS = Decimal('0.01')


class Period(NamedTuple):
    start: datetime.date  # inclusive
    end: datetime.date  # exclusive


def period_for(
    reference: datetime.date,
    epoch: datetime.date | None = None,
    length_days: int | None = None
) -> Period:
    """Returns the period containing `reference`. Dates before the epoch map to negative indices."""
    epoch = epoch or settings.EARNINGS_EPOCH
    length_days = length_days or settings.EARNINGS_PERIOD_DAYS
    if isinstance(reference, datetime.datetime):
        reference = reference.date()

    index = (reference - epoch).days // length_days
    start = epoch + datetime.timedelta(days=index * length_days)
    return Period(start, start + datetime.timedelta(days=length_days))


def minutes_to_hours(total_minutes: int) -> Decimal:
    return (Decimal(total_minutes) / Decimal(60)).quantize(CENTS, rounding=ROUND_HALF_UP)


def earnings_amount(total_minutes: int, hourly_rate: Decimal) -> Decimal:
    """Amount for `total_minutes` at `hourly_rate`, rounded to cents once at the end."""
    rate = Decimal(hourly_rate or 0)
    return (Decimal(total_minutes) * rate / Decimal(60)).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
