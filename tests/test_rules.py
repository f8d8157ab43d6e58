from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from rangegame.models.prediction import PointGuess, Prediction, RangeGuess
from rangegame.scoring.rules import compute_score, find_narrowest, is_correct
from rangegame.timing.weeks import DEFAULT_TZ, week_window_for

MONDAY = datetime(2025, 3, 10, 10, 0, tzinfo=DEFAULT_TZ)


def _pred(subject: str, lo: str, hi: str) -> Prediction:
    w = week_window_for(MONDAY)
    return Prediction(
        subject=subject,
        display_name=subject,
        guess=RangeGuess(Decimal(lo), Decimal(hi)),
        week_start=w.start,
        week_end=w.end,
        submitted_at=MONDAY,
    )


class TestIsCorrect:
    def test_inside_range(self) -> None:
        assert is_correct(RangeGuess(Decimal("240"), Decimal("250")), Decimal("245"))

    def test_bounds_inclusive(self) -> None:
        g = RangeGuess(Decimal("240.00"), Decimal("250.00"))
        assert is_correct(g, Decimal("240.00"))
        assert is_correct(g, Decimal("250.00"))

    def test_outside_range(self) -> None:
        g = RangeGuess(Decimal("240.00"), Decimal("250.00"))
        assert not is_correct(g, Decimal("239.99"))
        assert not is_correct(g, Decimal("250.01"))

    def test_point_guess_within_one_percent(self) -> None:
        g = PointGuess(Decimal("200.00"))
        assert is_correct(g, Decimal("202.00"))
        assert is_correct(g, Decimal("198.00"))
        assert not is_correct(g, Decimal("202.01"))


class TestFindNarrowest:
    def test_single_winner(self) -> None:
        preds = [_pred("a", "240", "250"), _pred("b", "230", "260")]
        result = find_narrowest(preds, Decimal("245"))
        assert result.width == Decimal("10")
        assert [p.subject for p in result.winners] == ["a"]

    def test_ties_all_win(self) -> None:
        preds = [
            _pred("a", "240", "250"),
            _pred("b", "241", "251"),
            _pred("c", "230", "260"),
        ]
        result = find_narrowest(preds, Decimal("245"))
        assert result.width == Decimal("10")
        assert {p.subject for p in result.winners} == {"a", "b"}

    def test_incorrect_narrower_range_ignored(self) -> None:
        preds = [_pred("a", "100", "101"), _pred("b", "230", "260")]
        result = find_narrowest(preds, Decimal("245"))
        assert result.width == Decimal("30")
        assert [p.subject for p in result.winners] == ["b"]

    def test_no_correct_predictions(self) -> None:
        preds = [_pred("a", "100", "150")]
        result = find_narrowest(preds, Decimal("245"))
        assert result.width is None
        assert result.winners == []
        assert not result.includes(Decimal("50"))


class TestComputeScore:
    def test_participation_only(self) -> None:
        assert compute_score(False, False, 1) == 1

    def test_correct(self) -> None:
        assert compute_score(True, False, 1) == 11

    def test_correct_and_narrowest(self) -> None:
        assert compute_score(True, True, 1) == 41

    def test_multiplier_applies_to_whole_score(self) -> None:
        assert compute_score(True, True, 5) == 205
        assert compute_score(False, False, 3) == 3

    def test_narrowest_requires_correct(self) -> None:
        assert compute_score(False, True, 2) == 2
