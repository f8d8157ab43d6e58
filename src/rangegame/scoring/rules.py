"""Scoring rules: correctness, narrowest-range bonus, and the score formula.

All functions here are pure. Settlement and persistence live in
rangegame.scoring.settlement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from rangegame.models.prediction import Guess, PointGuess, Prediction, RangeGuess

PARTICIPATION_POINTS = 1
CORRECT_BONUS = 10
NARROWEST_BONUS = 30

# Legacy point guesses count as correct within +/-1% of the guessed price.
POINT_TOLERANCE = Decimal("0.01")


def is_correct(guess: Guess, actual_price: Decimal) -> bool:
    """Whether actual_price satisfies the guess (range bounds are inclusive)."""
    if isinstance(guess, RangeGuess):
        return guess.range_min <= actual_price <= guess.range_max
    if isinstance(guess, PointGuess):
        band = guess.predicted_price * POINT_TOLERANCE
        return abs(actual_price - guess.predicted_price) <= band
    raise TypeError(f"Unknown guess type: {type(guess).__name__}")


@dataclass
class NarrowestRange:
    width: Decimal | None = None
    winners: list[Prediction] = field(default_factory=list)

    def includes(self, width: Decimal) -> bool:
        return self.width is not None and width == self.width


def find_narrowest(predictions: list[Prediction], actual_price: Decimal) -> NarrowestRange:
    """Minimum width among correct range predictions, with every prediction tied at it.

    Point guesses never compete. If nothing is correct there is no winner.
    """
    result = NarrowestRange()
    for pred in predictions:
        guess = pred.guess
        if not isinstance(guess, RangeGuess) or not is_correct(guess, actual_price):
            continue
        width = guess.width
        if result.width is None or width < result.width:
            result = NarrowestRange(width=width, winners=[pred])
        elif width == result.width:
            result.winners.append(pred)
    return result


def compute_score(correct: bool, narrowest: bool, multiplier: int) -> int:
    base = PARTICIPATION_POINTS
    if correct:
        base += CORRECT_BONUS
        if narrowest:
            base += NARROWEST_BONUS
    return base * multiplier
