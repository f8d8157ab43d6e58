"""Canonical week boundaries and weekday multipliers.

Every component that needs "this week" or "last week" goes through
week_window_for / previous_week_window so that submission, scoring and
leaderboard reads agree on the same boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

DEFAULT_TZ = ZoneInfo("America/New_York")

# Monday=0 ... Sunday=6
DAY_MULTIPLIERS: dict[int, int] = {0: 5, 1: 3, 2: 2, 3: 1}
DEFAULT_MULTIPLIER = 1

MARKET_CLOSE = time(16, 0)
_FRIDAY = 4


@dataclass(frozen=True)
class WeekWindow:
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


def localize(ts: datetime, tz: tzinfo = DEFAULT_TZ) -> datetime:
    """Express ts in the game time zone. Naive timestamps are taken as game time."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def _monday_midnight(ts: datetime, tz: tzinfo) -> datetime:
    local = localize(ts, tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time.min, tzinfo=tz)


def week_window_for(ts: datetime, tz: tzinfo = DEFAULT_TZ) -> WeekWindow:
    """Monday 00:00:00 through Friday 23:59:59.999999 of the week containing ts.

    Saturday and Sunday belong to the week that started on the preceding Monday.
    """
    start = _monday_midnight(ts, tz)
    end = start + timedelta(days=5) - timedelta(microseconds=1)
    return WeekWindow(start=start, end=end)


def previous_week_window(now: datetime, tz: tzinfo = DEFAULT_TZ) -> WeekWindow:
    """Monday 00:00:00 through Sunday 23:59:59.999999 of the week before now."""
    start = _monday_midnight(now, tz) - timedelta(days=7)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return WeekWindow(start=start, end=end)


def day_multiplier(ts: datetime, tz: tzinfo = DEFAULT_TZ) -> int:
    return DAY_MULTIPLIERS.get(localize(ts, tz).weekday(), DEFAULT_MULTIPLIER)


def is_settlement_open(now: datetime, tz: tzinfo = DEFAULT_TZ) -> bool:
    """True once the Friday close has passed for the week containing now."""
    local = localize(now, tz)
    if local.weekday() > _FRIDAY:
        return True
    return local.weekday() == _FRIDAY and local.time() >= MARKET_CLOSE
