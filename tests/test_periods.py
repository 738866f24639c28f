"""Tests for accounting period resolution."""

from datetime import UTC, date, datetime

import pytest

from tax_event_ledger.services.periods import PeriodResolver, end_of_month


def _resolver(now: datetime) -> PeriodResolver:
    return PeriodResolver(clock=lambda: now)


class TestEndOfMonth:
    @pytest.mark.parametrize(
        ("day", "expected"),
        [
            (date(2024, 1, 10), date(2024, 1, 31)),
            (date(2024, 2, 1), date(2024, 2, 29)),
            (date(2023, 2, 28), date(2023, 2, 28)),
            (date(2024, 4, 30), date(2024, 4, 30)),
        ],
    )
    def test_last_day(self, day: date, expected: date) -> None:
        assert end_of_month(day) == expected


class TestPeriodResolver:
    def test_current_period_is_end_of_utc_month(self) -> None:
        resolver = _resolver(datetime(2024, 3, 15, 12, tzinfo=UTC))
        assert resolver.current_period() == date(2024, 3, 31)

    def test_previous_month_period_is_closed(self) -> None:
        resolver = _resolver(datetime(2024, 3, 15, 12, tzinfo=UTC))
        assert resolver.is_period_closed(date(2024, 2, 10), 0)

    def test_current_month_period_is_open(self) -> None:
        resolver = _resolver(datetime(2024, 3, 15, 12, tzinfo=UTC))
        assert not resolver.is_period_closed(date(2024, 3, 1), 0)

    def test_positive_offset_closes_period_early(self) -> None:
        # 22:00 UTC on the last day is already the 1st in UTC+10.
        resolver = _resolver(datetime(2024, 1, 31, 22, tzinfo=UTC))
        assert not resolver.is_period_closed(date(2024, 1, 5), 0)
        assert resolver.is_period_closed(date(2024, 1, 5), 10 * 3600)

    def test_negative_offset_keeps_period_open(self) -> None:
        resolver = _resolver(datetime(2024, 2, 1, 3, tzinfo=UTC))
        assert resolver.is_period_closed(date(2024, 1, 5), 0)
        assert not resolver.is_period_closed(date(2024, 1, 5), -5 * 3600)

    def test_previous_month_bounds(self) -> None:
        resolver = _resolver(datetime(2024, 3, 15, 12, tzinfo=UTC))
        start, end = resolver.previous_month_bounds()

        assert resolver.previous_month() == (date(2024, 2, 1), date(2024, 2, 29))
        assert start == datetime(2024, 2, 1, tzinfo=UTC)
        assert end.date() == date(2024, 2, 29)
        assert end.hour == 23

    def test_close_of_day_window(self) -> None:
        now = datetime(2024, 3, 15, 12, tzinfo=UTC)
        start, end = _resolver(now).close_of_day_window()

        assert start == int(datetime(2024, 3, 14, 21, tzinfo=UTC).timestamp())
        assert end == int(datetime(2024, 3, 15, 23, 59, 59, tzinfo=UTC).timestamp())

    @pytest.mark.parametrize(
        ("offset_hours", "hour"),
        [(0, 0), (10, 14), (-5, 5), (5.5, 18), (14, 10)],
    )
    def test_transition_hour(self, offset_hours: float, hour: int) -> None:
        assert PeriodResolver.transition_hour(int(offset_hours * 3600)) == hour
