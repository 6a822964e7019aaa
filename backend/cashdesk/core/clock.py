"""Time helpers.

Timestamps are stored as naive UTC. The business day of a daily session is
the calendar date in ``settings.timezone``.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from cashdesk.core.config import settings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_date(moment: datetime, tz_name: str | None = None) -> date:
    """Calendar date of a naive-UTC ``moment`` in the deployment timezone."""
    zone = ZoneInfo(tz_name or settings.timezone)
    return moment.replace(tzinfo=timezone.utc).astimezone(zone).date()


def business_day_bounds(day: date, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """Naive-UTC ``[start, end)`` covering ``day`` in the deployment timezone."""
    zone = ZoneInfo(tz_name or settings.timezone)
    start_local = datetime(day.year, day.month, day.day, tzinfo=zone)
    end_local = start_local + timedelta(days=1)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from ``start`` to ``end``, never negative."""
    return max((end - start).total_seconds() / 60.0, 0.0)
