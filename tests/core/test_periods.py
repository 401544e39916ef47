'''
Tests for bi-weekly period arithmetic and money rounding.
'''
import datetime
from decimal import Decimal
import pytest

from src.tutorapp_backend.core.periods import period_for, minutes_to_hours, earnings_amount, Period

EPOCH = datetime.date(2024, 1, 1)


class TestPeriodFor:

    def test_epoch_starts_first_period(self):
        assert period_for(EPOCH, epoch=EPOCH) == Period(EPOCH, datetime.date(2024, 1, 15))

    def test_last_day_of_period_is_included(self):
        period = period_for(datetime.date(2024, 1, 14), epoch=EPOCH)
        assert period.start == EPOCH
        assert period.end == datetime.date(2024, 1, 15)

    def test_end_is_exclusive(self):
        period = period_for(datetime.date(2024, 1, 15), epoch=EPOCH)
        assert period.start == datetime.date(2024, 1, 15)
        assert period_for(EPOCH, epoch=EPOCH).end == period.start

    def test_periods_across_leap_year(self):
        period = period_for(datetime.date(2025, 3, 17), epoch=EPOCH)
        assert period == Period(datetime.date(2025, 3, 10), datetime.date(2025, 3, 24))

    def test_every_period_starts_on_a_monday(self):
        day = EPOCH
        for _ in range(120):
            period = period_for(day, epoch=EPOCH)
            assert period.start.weekday() == 0
            assert period.start <= day < period.end
            assert (period.end - period.start).days == 14
            day += datetime.timedelta(days=5)

    def test_dates_before_epoch(self):
        period = period_for(datetime.date(2023, 12, 31), epoch=EPOCH)
        assert period == Period(datetime.date(2023, 12, 18), EPOCH)

    def test_accepts_datetimes(self):
        assert period_for(datetime.datetime(2024, 1, 3, 18, 30), epoch=EPOCH).start == EPOCH

    def test_default_epoch_from_settings(self):
        assert period_for(datetime.date(2024, 1, 10)).start == EPOCH


class TestMoney:

    @pytest.mark.parametrize("minutes, hours", [
        (60, Decimal("1.00")),
        (90, Decimal("1.50")),
        (150, Decimal("2.50")),
        (50, Decimal("0.83")),
        (0, Decimal("0.00")),
    ])
    def test_minutes_to_hours(self, minutes, hours):
        assert minutes_to_hours(minutes) == hours

    def test_amount_rounds_once(self):
        # 50 minutes at 35.00/h is 29.1666..., rounded to 29.17 (not 0.83h * 35 = 29.05)
        assert earnings_amount(50, Decimal("35.00")) == Decimal("29.17")

    def test_amount_for_whole_hours(self):
        assert earnings_amount(150, Decimal("40.00")) == Decimal("100.00")
