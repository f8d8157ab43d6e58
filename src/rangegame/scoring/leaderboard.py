"""Leaderboard aggregation and the previous week's winner."""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta, tzinfo

from rangegame.models.leaderboard import LeaderboardRow, WeeklyWinner
from rangegame.models.prediction import Prediction
from rangegame.registry.queries import Registry
from rangegame.timing.weeks import DEFAULT_TZ, localize, previous_week_window

WEEK = timedelta(days=7)


def _score(pred: Prediction) -> int:
    if pred.settlement is None or pred.settlement.score is None:
        return 0
    return pred.settlement.score


def _group_by_subject(predictions: list[Prediction]) -> dict[str, list[Prediction]]:
    groups: dict[str, list[Prediction]] = defaultdict(list)
    for pred in predictions:
        groups[pred.subject].append(pred)
    return groups


def _weeks_active(first: datetime | None, last: datetime | None) -> int:
    if first is None or last is None:
        return 0
    return math.ceil((last - first) / WEEK)


def build_leaderboard(predictions: list[Prediction]) -> list[LeaderboardRow]:
    """Aggregate settled predictions per user and rank them.

    Sorted by total score, then accuracy, then prediction count, all descending.
    Ranks are 1-based positions; equal rows still get distinct ranks.
    """
    rows: list[LeaderboardRow] = []
    for subject, group in _group_by_subject(predictions).items():
        scores = [_score(p) for p in group]
        count = len(group)
        correct = sum(1 for p in group if p.settlement is not None and p.settlement.is_correct)
        created = [p.created_at for p in group if p.created_at is not None]
        first = min(created) if created else None
        last = max(created) if created else None
        rows.append(
            LeaderboardRow(
                subject=subject,
                display_name=group[0].display_name,
                total_score=sum(scores),
                prediction_count=count,
                correct_predictions=correct,
                accuracy=correct / count * 100 if count else 0.0,
                average_score=sum(scores) / count if count else 0.0,
                weeks_active=_weeks_active(first, last),
                first_prediction=first,
                last_prediction=last,
            )
        )

    rows.sort(key=lambda r: (-r.total_score, -r.accuracy, -r.prediction_count))
    for i, row in enumerate(rows, 1):
        row.rank = i
    return rows


def find_previous_week_winner(
    predictions: list[Prediction], now: datetime, tz: tzinfo = DEFAULT_TZ,
) -> WeeklyWinner | None:
    """Top scorer among settled predictions whose week started in the previous week."""
    window = previous_week_window(now, tz)
    in_window = [
        p for p in predictions
        if p.settlement is not None and window.contains(localize(p.week_start, tz))
    ]
    if not in_window:
        return None

    totals = []
    for subject, group in _group_by_subject(in_window).items():
        group.sort(key=lambda p: p.created_at or p.submitted_at)
        totals.append((sum(_score(p) for p in group), subject, group[0]))

    totals.sort(key=lambda t: (-t[0], t[1]))
    week_score, subject, representative = totals[0]
    return WeeklyWinner(
        subject=subject,
        display_name=representative.display_name,
        week_score=week_score,
        prediction=representative,
    )


class LeaderboardService:
    """Reads settled predictions from the registry and builds ranked views."""

    def __init__(self, registry: Registry, tz: tzinfo = DEFAULT_TZ) -> None:
        self._registry = registry
        self._tz = tz

    def leaderboard(self, limit: int | None = None, offset: int = 0) -> tuple[list[LeaderboardRow], int]:
        """Return (page of ranked rows, total distinct users)."""
        rows = build_leaderboard(self._registry.get_settled_predictions())
        end = None if limit is None else offset + limit
        return rows[offset:end], len(rows)

    def previous_week_winner(self, now: datetime | None = None) -> WeeklyWinner | None:
        ts = localize(now, self._tz) if now is not None else datetime.now(self._tz)
        window = previous_week_window(ts, self._tz)
        predictions = self._registry.get_settled_predictions(
            week_from=window.start, week_to=window.end,
        )
        return find_previous_week_winner(predictions, ts, self._tz)
