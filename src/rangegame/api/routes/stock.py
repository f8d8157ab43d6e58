"""Reference price endpoint."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from rangegame.api.deps import get_config, get_prices
from rangegame.config import AppConfig
from rangegame.data.prices import ReferencePrices
from rangegame.timing.weeks import week_window_for

router = APIRouter()


@router.get("/stock")
def get_stock(
    refresh: bool = Query(False),
    config: AppConfig = Depends(get_config),
    prices: ReferencePrices = Depends(get_prices),
) -> dict:
    """Current price plus this week's Monday and Friday closes."""
    if refresh:
        prices.refresh()
    window = week_window_for(datetime.now(config.tz), config.tz)
    weekly = prices.weekly_prices(window)
    return {
        "ticker": prices.ticker,
        "currentPrice": float(prices.current_price()),
        "weekStartPrice": float(weekly.week_start_price),
        "weekEndPrice": float(weekly.week_end_price),
        "weekStartDate": weekly.week_start_date.isoformat(),
        "weekEndDate": weekly.week_end_date.isoformat(),
        "isFallback": weekly.is_fallback,
    }
