from rangegame.scoring.leaderboard import (
    LeaderboardService,
    build_leaderboard,
    find_previous_week_winner,
)
from rangegame.scoring.predictions import PredictionService, validate_range
from rangegame.scoring.rules import compute_score, find_narrowest, is_correct
from rangegame.scoring.settlement import SettlementService

__all__ = [
    "LeaderboardService",
    "PredictionService",
    "SettlementService",
    "build_leaderboard",
    "compute_score",
    "find_narrowest",
    "find_previous_week_winner",
    "is_correct",
    "validate_range",
]
