from __future__ import annotations

from rangegame.data.alpha_vantage import AlphaVantageClient, AlphaVantageError
from rangegame.data.cache import TTLCache
from rangegame.data.prices import (
    ReferencePrices,
    WeeklyPrices,
    build_reference_prices,
    closest_close,
)
from rangegame.data.yfinance_client import YFinanceClient

__all__ = [
    "AlphaVantageClient",
    "AlphaVantageError",
    "ReferencePrices",
    "TTLCache",
    "WeeklyPrices",
    "YFinanceClient",
    "build_reference_prices",
    "closest_close",
]
