"""Alpha Vantage daily closes over HTTP."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://www.alphavantage.co/query"


class AlphaVantageError(RuntimeError):
    """The API answered with an explicit error message."""


class AlphaVantageClient:
    """Fetches TIME_SERIES_DAILY closes. Returns None when rate limited or unavailable."""

    def __init__(self, api_key: str, timeout_seconds: float = 10.0, client: httpx.Client | None = None) -> None:
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def daily_closes(self, ticker: str) -> dict[date, Decimal] | None:
        try:
            resp = self._client.get(
                BASE_URL,
                params={"function": "TIME_SERIES_DAILY", "symbol": ticker, "apikey": self._api_key},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Alpha Vantage request failed for %s", ticker, exc_info=True)
            return None
        return self.parse_daily(payload, ticker)

    @staticmethod
    def parse_daily(payload: dict, ticker: str = "") -> dict[date, Decimal] | None:
        """Extract {date: close} from a TIME_SERIES_DAILY payload.

        Raises AlphaVantageError on an explicit error message; returns None on
        rate limiting or a payload without a time series.
        """
        if payload.get("Error Message"):
            raise AlphaVantageError(f"Alpha Vantage API error: {payload['Error Message']}")
        if payload.get("Note"):
            logger.warning("Alpha Vantage note: %s", payload["Note"])
        info = payload.get("Information", "")
        if "rate limit" in info.lower():
            logger.warning("Alpha Vantage rate limit reached for %s", ticker)
            return None

        series = payload.get("Time Series (Daily)")
        if not series:
            logger.warning("No time series in Alpha Vantage response for %s", ticker)
            return None

        closes: dict[date, Decimal] = {}
        for day, bar in series.items():
            try:
                closes[date.fromisoformat(day)] = Decimal(bar["4. close"])
            except (KeyError, ValueError, InvalidOperation):
                logger.debug("Skipping malformed bar %s for %s", day, ticker)
        return closes or None

    def close(self) -> None:
        self._client.close()
