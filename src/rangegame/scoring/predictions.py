from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation

from rangegame.errors import (
    DuplicatePredictionError,
    PredictionNotFoundError,
    PredictionSettledError,
    RangeValidationError,
)
from rangegame.models.prediction import (
    PointGuess,
    Prediction,
    PredictionState,
    RangeGuess,
    Revision,
    validate_transition,
)
from rangegame.registry.queries import Registry
from rangegame.scoring.rules import POINT_TOLERANCE
from rangegame.timing.weeks import (
    DEFAULT_TZ,
    WeekWindow,
    day_multiplier,
    is_settlement_open,
    localize,
    week_window_for,
)

logger = logging.getLogger(__name__)

MIN_RANGE_WIDTH = Decimal("1.00")
CENT = Decimal("0.01")


def _whole_cents(value: Decimal) -> bool:
    try:
        return value == value.quantize(CENT)
    except InvalidOperation:
        return False


def validate_range(range_min: Decimal, range_max: Decimal, current_price: Decimal) -> None:
    """Reject a range before anything is written.

    Bounds are whole cents. Width must be at least $1 and at most 100% of the
    reference price.
    """
    if range_min <= 0 or range_max <= 0:
        raise RangeValidationError("Prices must be positive")
    if not (_whole_cents(range_min) and _whole_cents(range_max)):
        raise RangeValidationError("Prices can have at most two decimal places")
    if range_min >= range_max:
        raise RangeValidationError("Minimum price must be less than maximum price")
    width = range_max - range_min
    if width < MIN_RANGE_WIDTH:
        raise RangeValidationError(f"Range must be at least ${MIN_RANGE_WIDTH} wide")
    if width > current_price:
        raise RangeValidationError(
            f"Range cannot be wider than the current price (${current_price:.2f})"
        )


class PredictionService:
    """Handles the prediction lifecycle: submission, revision, weekly housekeeping."""

    def __init__(self, registry: Registry, tz: tzinfo = DEFAULT_TZ) -> None:
        self._registry = registry
        self._tz = tz

    def _now(self, now: datetime | None) -> datetime:
        return localize(now, self._tz) if now is not None else datetime.now(self._tz)

    def _ensure_open(self, window: WeekWindow, ts: datetime) -> None:
        """Entries close at the Friday close, or earlier if the week was force-scored."""
        if is_settlement_open(ts, self._tz):
            raise PredictionSettledError(
                "Predictions are closed for this week. Come back on Monday."
            )
        if self._registry.week_has_settlement(window.start):
            raise PredictionSettledError("This week has already been scored")

    def submit(
        self,
        subject: str,
        display_name: str,
        range_min: Decimal,
        range_max: Decimal,
        current_price: Decimal,
        now: datetime | None = None,
    ) -> tuple[Prediction, bool]:
        """Create this week's prediction for subject, or revise the existing one.

        Returns (prediction, created).
        """
        validate_range(range_min, range_max, current_price)
        ts = self._now(now)
        window = week_window_for(ts, self._tz)
        self._ensure_open(window, ts)
        revision = Revision(
            range_min=range_min,
            range_max=range_max,
            submitted_at=ts,
            day_multiplier=day_multiplier(ts, self._tz),
        )

        existing = self._registry.get_prediction_for_week(subject, window.start)
        if existing is not None:
            return self._apply_revision(existing, revision), False

        prediction = Prediction(
            subject=subject,
            display_name=display_name,
            guess=RangeGuess(range_min=range_min, range_max=range_max),
            week_start=window.start,
            week_end=window.end,
            submitted_at=ts,
            revision_log=[revision],
        )
        try:
            created = self._registry.create_prediction(prediction)
        except DuplicatePredictionError:
            # A concurrent request won the insert; fold this one in as an edit.
            logger.info("Concurrent create for %s week %s, retrying as revision",
                        subject, window.start.date())
            existing = self._registry.get_prediction_for_week(subject, window.start)
            if existing is None:
                raise
            return self._apply_revision(existing, revision), False

        logger.info("Prediction %s created for %s: %s-%s (x%d)",
                    created.id, subject, range_min, range_max, revision.day_multiplier)
        return created, True

    def revise(
        self,
        prediction_id: int,
        subject: str,
        range_min: Decimal,
        range_max: Decimal,
        current_price: Decimal,
        now: datetime | None = None,
    ) -> Prediction:
        validate_range(range_min, range_max, current_price)
        ts = self._now(now)

        existing = self._registry.get_prediction(prediction_id)
        if existing is None or existing.subject != subject:
            raise PredictionNotFoundError(f"Prediction {prediction_id} not found")
        if existing.is_settled:
            raise PredictionSettledError("Cannot edit prediction after results are available")
        window = week_window_for(ts, self._tz)
        if existing.week_start != window.start:
            raise RangeValidationError("Can only edit current week's prediction")
        self._ensure_open(window, ts)

        revision = Revision(
            range_min=range_min,
            range_max=range_max,
            submitted_at=ts,
            day_multiplier=day_multiplier(ts, self._tz),
        )
        return self._apply_revision(existing, revision)

    def _apply_revision(self, existing: Prediction, revision: Revision) -> Prediction:
        if not validate_transition(existing.state, PredictionState.REVISED):
            raise PredictionSettledError("Cannot edit prediction after results are available")
        updated = self._registry.revise_prediction(existing.id, revision)  # type: ignore[arg-type]
        if updated is None:
            # Settled between our read and the update.
            raise PredictionSettledError("Cannot edit prediction after results are available")
        logger.info("Prediction %s revised (%d revisions)", updated.id, len(updated.revision_log))
        return updated

    def current_week_for(self, subject: str, now: datetime | None = None) -> Prediction | None:
        window = week_window_for(self._now(now), self._tz)
        return self._registry.get_prediction_for_week(subject, window.start)

    def current_week_all(self, now: datetime | None = None, limit: int = 100) -> list[Prediction]:
        window = week_window_for(self._now(now), self._tz)
        return self._registry.get_week_predictions(window.start, limit=limit)

    def history_for(self, subject: str, limit: int = 52) -> list[Prediction]:
        return self._registry.get_predictions_for_user(subject, limit=limit)

    def migrate_legacy(self) -> int:
        """Convert every legacy point guess into a +/-1% range. Returns the count converted."""
        converted = 0
        for pred in self._registry.get_legacy_predictions():
            if not isinstance(pred.guess, PointGuess):
                continue
            price = pred.guess.predicted_price
            band = (price * POINT_TOLERANCE).quantize(Decimal("0.01"))
            self._registry.convert_legacy_prediction(pred.id, price - band, price + band)  # type: ignore[arg-type]
            logger.info("Converted legacy prediction %s for %s to %s-%s",
                        pred.id, pred.display_name, price - band, price + band)
            converted += 1
        return converted

    def reset_week(self, now: datetime | None = None) -> int:
        """Delete all of the current week's predictions (administrative reset)."""
        window = week_window_for(self._now(now), self._tz)
        deleted = self._registry.delete_week(window.start)
        logger.warning("Reset week of %s: deleted %d predictions", window.start.date(), deleted)
        return deleted
