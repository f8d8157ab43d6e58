from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from rangegame.models.prediction import Prediction


@dataclass
class LeaderboardRow:
    subject: str
    display_name: str
    total_score: int
    prediction_count: int
    correct_predictions: int
    accuracy: float
    average_score: float
    weeks_active: int
    first_prediction: datetime | None = None
    last_prediction: datetime | None = None
    rank: int = 0


@dataclass
class WeeklyWinner:
    subject: str
    display_name: str
    week_score: int
    prediction: Prediction


@dataclass
class ScoringResult:
    week_start: datetime
    actual_price: Decimal
    settled_count: int = 0
    correct_count: int = 0
    narrowest_width: Decimal | None = None
    narrowest_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
