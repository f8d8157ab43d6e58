"""Leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from rangegame.api.deps import get_leaderboard_service
from rangegame.api.routes.shared import leaderboard_row_out, winner_out
from rangegame.scoring.leaderboard import LeaderboardService

router = APIRouter()


@router.get("/leaderboard")
def get_leaderboard(
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> dict:
    """Ranked settled results, total player count, and last week's winner."""
    rows, total = service.leaderboard(limit=limit, offset=offset)
    return {
        "leaderboard": [leaderboard_row_out(r) for r in rows],
        "totalUsers": total,
        "previousWeekWinner": winner_out(service.previous_week_winner()),
    }


@router.get("/leaderboard/previous-winner")
def previous_winner(service: LeaderboardService = Depends(get_leaderboard_service)) -> dict:
    return {"winner": winner_out(service.previous_week_winner())}
