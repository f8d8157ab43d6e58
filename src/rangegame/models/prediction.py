from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum


@dataclass(frozen=True)
class RangeGuess:
    range_min: Decimal
    range_max: Decimal

    @property
    def width(self) -> Decimal:
        return self.range_max - self.range_min


@dataclass(frozen=True)
class PointGuess:
    """Legacy single-price guess, only present on rows not yet migrated."""

    predicted_price: Decimal


Guess = RangeGuess | PointGuess


@dataclass(frozen=True)
class Revision:
    range_min: Decimal
    range_max: Decimal
    submitted_at: datetime
    day_multiplier: int

    def to_dict(self) -> dict:
        return {
            "range_min": str(self.range_min),
            "range_max": str(self.range_max),
            "submitted_at": self.submitted_at.isoformat(),
            "day_multiplier": self.day_multiplier,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Revision:
        return cls(
            range_min=Decimal(str(d["range_min"])),
            range_max=Decimal(str(d["range_max"])),
            submitted_at=datetime.fromisoformat(d["submitted_at"]),
            day_multiplier=int(d["day_multiplier"]),
        )


@dataclass(frozen=True)
class Settlement:
    actual_price: Decimal
    is_correct: bool
    score: int | None
    range_width: Decimal | None
    day_multiplier: int
    settled_at: datetime | None = None


class PredictionState(StrEnum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    REVISED = "REVISED"
    SETTLED = "SETTLED"


VALID_TRANSITIONS: dict[PredictionState, set[PredictionState]] = {
    PredictionState.DRAFT: {PredictionState.SUBMITTED},
    PredictionState.SUBMITTED: {PredictionState.REVISED, PredictionState.SETTLED},
    PredictionState.REVISED: {PredictionState.REVISED, PredictionState.SETTLED},
    PredictionState.SETTLED: set(),
}


def validate_transition(current: PredictionState, target: PredictionState) -> bool:
    allowed = VALID_TRANSITIONS.get(current, set())
    return target in allowed


@dataclass
class Prediction:
    subject: str
    display_name: str
    guess: Guess
    week_start: datetime
    week_end: datetime
    submitted_at: datetime
    revision_log: list[Revision] = field(default_factory=list)
    settlement: Settlement | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def range_min(self) -> Decimal | None:
        return self.guess.range_min if isinstance(self.guess, RangeGuess) else None

    @property
    def range_max(self) -> Decimal | None:
        return self.guess.range_max if isinstance(self.guess, RangeGuess) else None

    @property
    def is_settled(self) -> bool:
        return self.settlement is not None

    @property
    def state(self) -> PredictionState:
        if self.settlement is not None:
            return PredictionState.SETTLED
        if len(self.revision_log) > 1:
            return PredictionState.REVISED
        return PredictionState.SUBMITTED
