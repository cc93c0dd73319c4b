"""Daily streak rules: calendar-day boundaries, gaps, and the longest streak."""

from datetime import date, datetime, timedelta, timezone

import pytest

from scrolily.progression.calendar import app_date
from scrolily.progression.streak import compute_streak


class TestComputeStreak:
    def test_first_read_starts_streak(self):
        result = compute_streak(None, date(2026, 10, 19), 0, 0)
        assert result.current_streak == 1
        assert result.longest_streak == 1
        assert result.updated is True

    def test_same_day_read_is_noop(self):
        result = compute_streak(date(2026, 10, 19), date(2026, 10, 19), 4, 9)
        assert result.current_streak == 4
        assert result.longest_streak == 9
        assert result.updated is False

    def test_consecutive_day_extends(self):
        result = compute_streak(date(2026, 10, 18), date(2026, 10, 19), 4, 4)
        assert result.current_streak == 5
        assert result.longest_streak == 5
        assert result.updated is True

    def test_gap_resets_to_one(self):
        """Missing one full day resets the streak but keeps the longest."""
        result = compute_streak(date(2026, 10, 17), date(2026, 10, 19), 12, 20)
        assert result.current_streak == 1
        assert result.longest_streak == 20

    def test_longest_streak_never_drops(self):
        result = compute_streak(date(2026, 9, 1), date(2026, 10, 19), 30, 30)
        assert result.longest_streak == 30

    def test_last_read_in_future_resets(self):
        result = compute_streak(date(2026, 10, 25), date(2026, 10, 19), 3, 3)
        assert result.current_streak == 1
        assert result.longest_streak == 3

    def test_month_boundary_is_consecutive(self):
        result = compute_streak(date(2026, 9, 30), date(2026, 10, 1), 2, 2)
        assert result.current_streak == 3

    @pytest.mark.parametrize("days", [1, 7, 40, 364])
    def test_streak_of_n_days(self, days: int):
        current, longest = 0, 0
        last = None
        for offset in range(days):
            today = date(2026, 1, 1) + timedelta(days=offset)
            result = compute_streak(last, today, current, longest)
            current, longest, last = result.current_streak, result.longest_streak, today
        assert current == days
        assert longest == days


class TestAppDate:
    """Reads an hour apart across midnight land on different days."""

    def test_across_midnight_utc(self):
        before = datetime(2026, 10, 18, 23, 30, tzinfo=timezone.utc)
        after = datetime(2026, 10, 19, 0, 30, tzinfo=timezone.utc)
        first = compute_streak(None, app_date(before), 0, 0)
        second = compute_streak(app_date(before), app_date(after), first.current_streak, first.longest_streak)
        assert second.current_streak == 2

    def test_same_calendar_day_23_hours_apart(self):
        early = datetime(2026, 10, 19, 0, 15, tzinfo=timezone.utc)
        late = datetime(2026, 10, 19, 23, 15, tzinfo=timezone.utc)
        assert app_date(early) == app_date(late)

    def test_naive_datetime_treated_as_utc(self):
        assert app_date(datetime(2026, 10, 19, 12, 0)) == date(2026, 10, 19)
