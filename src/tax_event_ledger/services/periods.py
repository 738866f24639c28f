"""Accounting period resolution.

Periods are calendar months identified by their last day. Whether a period
has closed is judged against "now" shifted by the owning company's UTC
offset.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def end_of_month(day: date) -> date:
    return day + relativedelta(day=31)


def start_of_month(day: date) -> date:
    return day.replace(day=1)


class PeriodResolver:
    def __init__(self, clock: Clock = utc_now, lookback_hours: int = 15) -> None:
        self._clock = clock
        self._lookback = timedelta(hours=lookback_hours)

    def now(self) -> datetime:
        return self._clock()

    def current_period(self) -> date:
        """End date of the current UTC month."""
        return end_of_month(self.now().date())

    def is_period_closed(self, invoice_date: date, offset_seconds: int) -> bool:
        local_now = self.now() + timedelta(seconds=offset_seconds)
        return end_of_month(invoice_date) < local_now.date()

    def close_of_day_window(self) -> tuple[int, int]:
        """Timestamps bounding the duplicate-snapshot window of a daily sweep."""
        now = self.now()
        start = now - self._lookback
        end = datetime.combine(now.date(), time.max, tzinfo=UTC)
        return int(start.timestamp()), int(end.timestamp())

    def previous_month(self) -> tuple[date, date]:
        first_of_this_month = start_of_month(self.now().date())
        last_month_end = first_of_this_month - timedelta(days=1)
        return start_of_month(last_month_end), last_month_end

    def previous_month_bounds(self) -> tuple[datetime, datetime]:
        """The previous month as an inclusive UTC datetime range."""
        start, end = self.previous_month()
        return (
            datetime.combine(start, time.min, tzinfo=UTC),
            datetime.combine(end, time.max, tzinfo=UTC),
        )

    @staticmethod
    def transition_hour(offset_seconds: int) -> int:
        """UTC hour at which a timezone with this offset rolls into a new day."""
        return int(24 - offset_seconds / 3600) % 24
