from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from rangegame.errors import PredictionNotFoundError
from rangegame.models.prediction import PointGuess, Prediction, RangeGuess, Settlement
from rangegame.registry.queries import Registry
from rangegame.scoring.settlement import SettlementService, settle_one
from rangegame.timing.weeks import DEFAULT_TZ, week_window_for

ET = DEFAULT_TZ
MONDAY = datetime(2025, 3, 10, 10, 0, tzinfo=ET)
FRIDAY_CLOSE = datetime(2025, 3, 14, 16, 30, tzinfo=ET)
ACTUAL = Decimal("245.00")


def _pred(
    pid: int, name: str, lo: str | None, hi: str | None, submitted: datetime,
    point: str | None = None,
) -> Prediction:
    w = week_window_for(submitted)
    guess = PointGuess(Decimal(point)) if point else RangeGuess(Decimal(lo), Decimal(hi))
    return Prediction(
        id=pid,
        subject=f"user_{name.lower()}",
        display_name=name,
        guess=guess,
        week_start=w.start,
        week_end=w.end,
        submitted_at=submitted,
    )


@pytest.fixture
def registry() -> MagicMock:
    reg = MagicMock(spec=Registry)
    reg.settle_prediction.return_value = True
    reg.log_scoring_run.return_value = 1
    return reg


def _settled(pred: Prediction, score: int) -> Prediction:
    guess = pred.guess
    return replace(pred, settlement=Settlement(ACTUAL, True, score, guess.width, 5))


def _settlements(registry: MagicMock) -> dict[int, object]:
    return {c.args[0]: c.args[1] for c in registry.settle_prediction.call_args_list}


class TestSettleOne:
    def test_monday_narrowest_correct(self) -> None:
        chris = _pred(1, "Chris", "240.10", "249.90", MONDAY)
        s = settle_one(chris, ACTUAL, Decimal("9.80"))
        assert s is not None
        assert s.day_multiplier == 5
        assert s.is_correct is True
        assert s.score == 205
        assert s.range_width == Decimal("9.80")

    def test_legacy_point_guess_returns_none(self) -> None:
        legacy = _pred(2, "Old", None, None, MONDAY, point="245.00")
        assert settle_one(legacy, ACTUAL, None) is None

    def test_multiplier_from_latest_submission(self) -> None:
        pred = _pred(3, "Late", "240", "250", MONDAY + timedelta(days=2))
        s = settle_one(pred, ACTUAL, None)
        assert s.day_multiplier == 2
        assert s.score == 22


class TestSettlementService:
    def test_worked_examples(self, registry: MagicMock) -> None:
        chris = _pred(1, "Chris", "240.10", "249.90", MONDAY)
        dana = _pred(2, "Dana", "230", "260", MONDAY + timedelta(days=3))
        eli = _pred(3, "Eli", "100", "150", MONDAY + timedelta(days=1))
        registry.get_week_predictions.return_value = [chris, dana, eli]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        scores = {pid: s.score for pid, s in _settlements(registry).items()}
        assert scores == {1: 205, 2: 11, 3: 3}
        assert result.settled_count == 3
        assert result.correct_count == 2
        assert result.narrowest_width == Decimal("9.80")
        assert result.narrowest_count == 1

    def test_reads_whole_current_week(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = [_pred(1, "A", "240", "250", MONDAY)]
        SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)
        registry.get_week_predictions.assert_called_once_with(week_window_for(MONDAY).start)

    def test_already_settled_rows_are_not_rewritten(self, registry: MagicMock) -> None:
        chris = _settled(_pred(1, "Chris", "240.10", "249.90", MONDAY), 205)
        registry.get_week_predictions.return_value = [chris]
        with pytest.raises(PredictionNotFoundError):
            SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)
        registry.settle_prediction.assert_not_called()

    def test_leftover_row_competes_with_settled_rows(self, registry: MagicMock) -> None:
        chris = _settled(_pred(1, "Chris", "240.10", "249.90", MONDAY), 205)
        fay = _pred(4, "Fay", "230", "260", MONDAY + timedelta(days=3))
        registry.get_week_predictions.return_value = [chris, fay]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert {pid: s.score for pid, s in _settlements(registry).items()} == {4: 11}
        assert result.narrowest_width == Decimal("9.80")
        assert result.settled_count == 1

    def test_leftover_row_tied_with_settled_narrowest(self, registry: MagicMock) -> None:
        chris = _settled(_pred(1, "Chris", "240.10", "249.90", MONDAY), 205)
        gus = _pred(5, "Gus", "240.00", "249.80", MONDAY + timedelta(days=1))
        registry.get_week_predictions.return_value = [chris, gus]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert _settlements(registry)[5].score == 123
        assert result.narrowest_count == 2

    def test_narrowest_ties_all_rewarded(self, registry: MagicMock) -> None:
        a = _pred(1, "A", "240", "250", MONDAY)
        b = _pred(2, "B", "241", "251", MONDAY)
        c = _pred(3, "C", "200", "300", MONDAY)
        registry.get_week_predictions.return_value = [a, b, c]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        scores = {pid: s.score for pid, s in _settlements(registry).items()}
        assert scores == {1: 205, 2: 205, 3: 55}
        assert result.narrowest_count == 2

    def test_no_correct_means_no_bonus(self, registry: MagicMock) -> None:
        a = _pred(1, "A", "100", "110", MONDAY)
        b = _pred(2, "B", "300", "301", MONDAY)
        registry.get_week_predictions.return_value = [a, b]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert all(s.score == 5 for s in _settlements(registry).values())
        assert result.narrowest_width is None
        assert result.correct_count == 0

    def test_empty_week_raises(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = []
        with pytest.raises(PredictionNotFoundError):
            SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)
        registry.settle_prediction.assert_not_called()

    def test_legacy_rows_skipped(self, registry: MagicMock) -> None:
        legacy = _pred(1, "Old", None, None, MONDAY, point="245.00")
        ok = _pred(2, "New", "240", "250", MONDAY)
        registry.get_week_predictions.return_value = [legacy, ok]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert result.skipped_count == 1
        assert result.settled_count == 1
        assert list(_settlements(registry)) == [2]

    def test_write_failure_does_not_abort_batch(self, registry: MagicMock) -> None:
        a = _pred(1, "A", "240", "250", MONDAY)
        b = _pred(2, "B", "230", "260", MONDAY)
        registry.get_week_predictions.return_value = [a, b]
        registry.settle_prediction.side_effect = [RuntimeError("db down"), True]

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert result.failed_count == 1
        assert result.settled_count == 1
        assert registry.settle_prediction.call_count == 2

    def test_concurrently_settled_row_counted_as_skipped(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = [_pred(1, "A", "240", "250", MONDAY)]
        registry.settle_prediction.return_value = False

        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)

        assert result.settled_count == 0
        assert result.skipped_count == 1

    def test_logs_scoring_run(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = [_pred(1, "A", "240", "250", MONDAY)]
        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE, trigger="cli")
        registry.log_scoring_run.assert_called_once_with(result, trigger="cli")

    def test_audit_failure_does_not_raise(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = [_pred(1, "A", "240", "250", MONDAY)]
        registry.log_scoring_run.side_effect = RuntimeError("audit table missing")
        result = SettlementService(registry).run(ACTUAL, now=FRIDAY_CLOSE)
        assert result.settled_count == 1


class TestHasPending:
    def test_pending(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = [_pred(1, "A", "240", "250", MONDAY)]
        assert SettlementService(registry).has_pending(now=FRIDAY_CLOSE) is True
        registry.get_week_predictions.assert_called_once_with(
            week_window_for(MONDAY).start, unsettled_only=True, limit=1,
        )

    def test_nothing_pending(self, registry: MagicMock) -> None:
        registry.get_week_predictions.return_value = []
        assert SettlementService(registry).has_pending(now=FRIDAY_CLOSE) is False
