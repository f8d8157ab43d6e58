"""Weekly scoring pass: settles the current week's open predictions.

Score per prediction:

    (1 + 10 * correct + 30 * narrowest_tie) * day_multiplier

where narrowest_tie is true for every correct range prediction whose width
equals the minimum width among the week's correct predictions. Rows settled
by an earlier run still count toward that minimum.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from decimal import Decimal

from rangegame.errors import PredictionNotFoundError
from rangegame.models.leaderboard import ScoringResult
from rangegame.models.prediction import Prediction, RangeGuess, Settlement
from rangegame.registry.queries import Registry
from rangegame.scoring.rules import compute_score, find_narrowest, is_correct
from rangegame.timing.weeks import DEFAULT_TZ, day_multiplier, localize, week_window_for

logger = logging.getLogger(__name__)


def settle_one(
    prediction: Prediction, actual_price: Decimal, narrowest_width: Decimal | None,
    tz: tzinfo = DEFAULT_TZ,
) -> Settlement | None:
    """Compute the settlement for one prediction, or None for legacy point guesses."""
    guess = prediction.guess
    if not isinstance(guess, RangeGuess):
        return None
    correct = is_correct(guess, actual_price)
    width = guess.width
    multiplier = day_multiplier(prediction.submitted_at, tz)
    narrowest = narrowest_width is not None and width == narrowest_width
    return Settlement(
        actual_price=actual_price,
        is_correct=correct,
        score=compute_score(correct, narrowest, multiplier),
        range_width=width,
        day_multiplier=multiplier,
    )


class SettlementService:
    """Runs the scoring pass over one week of predictions."""

    def __init__(self, registry: Registry, tz: tzinfo = DEFAULT_TZ) -> None:
        self._registry = registry
        self._tz = tz

    def has_pending(self, now: datetime | None = None) -> bool:
        """Whether the week containing now still has unsettled predictions."""
        ts = localize(now, self._tz) if now is not None else datetime.now(self._tz)
        window = week_window_for(ts, self._tz)
        pending = self._registry.get_week_predictions(window.start, unsettled_only=True, limit=1)
        return bool(pending)

    def run(
        self, actual_price: Decimal, now: datetime | None = None, trigger: str = "manual",
    ) -> ScoringResult:
        """Settle every unsettled prediction in the week containing now.

        Raises PredictionNotFoundError when the week has nothing left to settle.
        A failure writing one record is logged and counted; the rest of the
        batch still settles.
        """
        ts = localize(now, self._tz) if now is not None else datetime.now(self._tz)
        window = week_window_for(ts, self._tz)
        week = self._registry.get_week_predictions(window.start)
        batch = [p for p in week if not p.is_settled]
        if not batch:
            raise PredictionNotFoundError(
                f"No predictions found for the week of {window.start.date()}"
            )

        narrowest = find_narrowest(week, actual_price)
        result = ScoringResult(
            week_start=window.start,
            actual_price=actual_price,
            narrowest_width=narrowest.width,
            narrowest_count=len(narrowest.winners),
        )

        for pred in batch:
            settlement = settle_one(pred, actual_price, narrowest.width, self._tz)
            if settlement is None:
                logger.warning(
                    "Skipping prediction %s for %s: no range fields (legacy point guess)",
                    pred.id, pred.display_name,
                )
                result.skipped_count += 1
                continue
            try:
                written = self._registry.settle_prediction(pred.id, settlement)  # type: ignore[arg-type]
            except Exception:
                logger.exception("Failed to settle prediction %s", pred.id)
                result.failed_count += 1
                continue
            if not written:
                logger.warning("Prediction %s was settled concurrently, leaving as is", pred.id)
                result.skipped_count += 1
                continue
            result.settled_count += 1
            if settlement.is_correct:
                result.correct_count += 1

        logger.info(
            "Scored week of %s at %s: %d settled, %d correct, narrowest=%s (%d), "
            "%d skipped, %d failed",
            window.start.date(), actual_price, result.settled_count, result.correct_count,
            result.narrowest_width, result.narrowest_count,
            result.skipped_count, result.failed_count,
        )
        try:
            self._registry.log_scoring_run(result, trigger=trigger)
        except Exception:
            logger.exception("Failed to record scoring run for week of %s", window.start.date())
        return result
