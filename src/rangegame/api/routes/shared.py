"""Response shaping shared by the route modules (camelCase JSON)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from rangegame.models.leaderboard import LeaderboardRow, ScoringResult, WeeklyWinner
from rangegame.models.prediction import PointGuess, Prediction
from rangegame.models.user import User


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def prediction_out(p: Prediction) -> dict:
    s = p.settlement
    return {
        "id": p.id,
        "userId": p.subject,
        "username": p.display_name,
        "minPrice": _money(p.range_min),
        "maxPrice": _money(p.range_max),
        "predictedPrice": _money(p.guess.predicted_price) if isinstance(p.guess, PointGuess) else None,
        "weekStart": _iso(p.week_start),
        "weekEnd": _iso(p.week_end),
        "submittedAt": _iso(p.submitted_at),
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
        "state": p.state.value,
        "revisions": [
            {
                "minPrice": float(r.range_min),
                "maxPrice": float(r.range_max),
                "submittedAt": r.submitted_at.isoformat(),
                "dayMultiplier": r.day_multiplier,
            }
            for r in p.revision_log
        ],
        "actualPrice": _money(s.actual_price) if s else None,
        "isCorrect": s.is_correct if s else None,
        "score": s.score if s else None,
        "rangeWidth": _money(s.range_width) if s else None,
        "dayMultiplier": s.day_multiplier if s else None,
    }


def leaderboard_row_out(r: LeaderboardRow) -> dict:
    return {
        "rank": r.rank,
        "userId": r.subject,
        "username": r.display_name,
        "totalScore": r.total_score,
        "predictionCount": r.prediction_count,
        "correctPredictions": r.correct_predictions,
        "accuracy": round(r.accuracy, 2),
        "averageScore": round(r.average_score, 2),
        "weeksActive": r.weeks_active,
        "firstPrediction": _iso(r.first_prediction),
        "lastPrediction": _iso(r.last_prediction),
    }


def winner_out(w: WeeklyWinner | None) -> dict | None:
    if w is None:
        return None
    return {
        "userId": w.subject,
        "username": w.display_name,
        "weekScore": w.week_score,
        "prediction": prediction_out(w.prediction),
    }


def scoring_result_out(r: ScoringResult) -> dict:
    return {
        "weekStart": _iso(r.week_start),
        "actualPrice": float(r.actual_price),
        "settled": r.settled_count,
        "correct": r.correct_count,
        "narrowestWidth": _money(r.narrowest_width),
        "narrowestCount": r.narrowest_count,
        "skipped": r.skipped_count,
        "failed": r.failed_count,
    }


def user_out(u: User) -> dict:
    return {
        "id": u.subject,
        "username": u.username,
        "provider": u.provider.value,
        "name": u.name,
        "image": u.image,
    }
