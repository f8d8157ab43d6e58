from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import yfinance as yf

logger = logging.getLogger(__name__)


def _to_decimal(value: Any) -> Decimal | None:
    """Safely convert a value to a 2dp Decimal."""
    if value is None:
        return None
    try:
        return Decimal(str(round(float(value), 2)))
    except (InvalidOperation, ValueError, TypeError):
        return None


class YFinanceClient:
    """Daily closes from yfinance, used when no Alpha Vantage key is configured."""

    def __init__(self, period: str = "1mo") -> None:
        self._period = period

    def daily_closes(self, ticker: str) -> dict[date, Decimal] | None:
        try:
            df = yf.Ticker(ticker).history(period=self._period, auto_adjust=False)
        except Exception:
            logger.exception("Error fetching history for %s", ticker)
            return None
        if df is None or df.empty:
            logger.warning("No price data for %s", ticker)
            return None

        closes: dict[date, Decimal] = {}
        for ts, value in df["Close"].items():
            price = _to_decimal(value)
            if price is not None:
                closes[ts.date()] = price
        return closes or None
