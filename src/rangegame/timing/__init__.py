from rangegame.timing.weeks import (
    WeekWindow,
    day_multiplier,
    is_settlement_open,
    previous_week_window,
    week_window_for,
)

__all__ = [
    "WeekWindow",
    "day_multiplier",
    "is_settlement_open",
    "previous_week_window",
    "week_window_for",
]
