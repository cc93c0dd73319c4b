"""App-local calendar helpers.

"Today" for streaks, rolling buckets and group weeks is the calendar date
in ``settings.app_timezone``, never the server's local date.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from scrolily.config import get_settings


def app_now() -> datetime:
    return datetime.now(timezone.utc)


def app_date(moment: datetime) -> date:
    """Calendar date of ``moment`` in the app timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(get_settings().app_timezone)).date()


def app_today(now: datetime | None = None) -> date:
    return app_date(now or app_now())


def week_start(d: date) -> date:
    """Sunday that opens the Sun-Sat week containing ``d``."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def window_start(today: date, days: int) -> date:
    """First date of an inclusive ``days``-long window ending on ``today``."""
    return today - timedelta(days=days - 1)
