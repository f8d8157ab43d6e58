from __future__ import annotations

from rangegame.models.leaderboard import LeaderboardRow, ScoringResult, WeeklyWinner
from rangegame.models.prediction import (
    VALID_TRANSITIONS,
    Guess,
    PointGuess,
    Prediction,
    PredictionState,
    RangeGuess,
    Revision,
    Settlement,
    validate_transition,
)
from rangegame.models.user import AuthProvider, User

__all__ = [
    # prediction
    "Guess",
    "RangeGuess",
    "PointGuess",
    "Revision",
    "Settlement",
    "Prediction",
    # lifecycle
    "PredictionState",
    "VALID_TRANSITIONS",
    "validate_transition",
    # user
    "AuthProvider",
    "User",
    # derived
    "LeaderboardRow",
    "WeeklyWinner",
    "ScoringResult",
]
