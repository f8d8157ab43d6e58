"""Reference prices for submission validation and settlement.

Wraps a daily-close provider (Alpha Vantage or yfinance) with a short TTL
cache and a fixed fallback price for when the provider is unavailable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from rangegame.data.alpha_vantage import AlphaVantageClient, AlphaVantageError
from rangegame.data.cache import TTLCache
from rangegame.data.yfinance_client import YFinanceClient
from rangegame.timing.weeks import WeekWindow

if TYPE_CHECKING:
    from rangegame.config import AppConfig

logger = logging.getLogger(__name__)

PRICE_CACHE_TTL_SECONDS = 15 * 60


class DailyCloseProvider(Protocol):
    def daily_closes(self, ticker: str) -> dict[date, Decimal] | None: ...


@dataclass(frozen=True)
class WeeklyPrices:
    week_start_price: Decimal
    week_end_price: Decimal
    week_start_date: date
    week_end_date: date
    is_fallback: bool = False


def closest_close(closes: dict[date, Decimal], target: date) -> tuple[date, Decimal]:
    """Close on target, else the nearest earlier trading day, else the earliest later one."""
    if target in closes:
        return target, closes[target]
    before = [d for d in closes if d <= target]
    if before:
        day = max(before)
    else:
        day = min(closes)
    return day, closes[day]


class ReferencePrices:
    def __init__(
        self,
        provider: DailyCloseProvider,
        ticker: str,
        fallback_price: Decimal,
        cache: TTLCache | None = None,
    ) -> None:
        self._provider = provider
        self._ticker = ticker
        self._fallback = fallback_price
        self._cache = cache or TTLCache(default_ttl_seconds=PRICE_CACHE_TTL_SECONDS)

    @property
    def ticker(self) -> str:
        return self._ticker

    def _closes(self) -> dict[date, Decimal] | None:
        def fetch() -> dict[date, Decimal] | None:
            try:
                return self._provider.daily_closes(self._ticker)
            except AlphaVantageError:
                logger.exception("Price provider error for %s", self._ticker)
                return None

        return self._cache.get_or_fetch(f"closes:{self._ticker}", fetch)

    def current_price(self) -> Decimal:
        """Latest close, or the fallback price."""
        closes = self._closes()
        if not closes:
            logger.warning("Using fallback price %s for %s", self._fallback, self._ticker)
            return self._fallback
        return closes[max(closes)]

    def closing_price(self, day: date, refresh: bool = False) -> Decimal | None:
        """Official close for day, used to settle a week.

        None until day's bar is published. When day is missing but a later bar
        exists the market was closed that day, and the previous close stands.
        Pass refresh=True to bypass cached closes fetched before the bell.
        """
        if refresh:
            self.refresh()
        closes = self._closes()
        if not closes:
            return None
        if day in closes:
            return closes[day]
        earlier = [d for d in closes if d < day]
        if earlier and max(closes) > day:
            last = max(earlier)
            logger.info("No %s bar for %s, market closed; using %s close", self._ticker, day, last)
            return closes[last]
        logger.info("Close for %s on %s not published yet", self._ticker, day)
        return None

    def weekly_prices(self, window: WeekWindow) -> WeeklyPrices:
        monday = window.start.date()
        friday = window.end.date()
        closes = self._closes()
        if not closes:
            logger.warning("Using fallback weekly prices for %s", self._ticker)
            return WeeklyPrices(self._fallback, self._fallback, monday, friday, is_fallback=True)
        _, start_price = closest_close(closes, monday)
        _, end_price = closest_close(closes, friday)
        return WeeklyPrices(start_price, end_price, monday, friday)

    def refresh(self) -> None:
        self._cache.invalidate(f"closes:{self._ticker}")


def build_reference_prices(config: AppConfig) -> ReferencePrices:
    """Alpha Vantage when a key is configured, otherwise yfinance."""
    provider: DailyCloseProvider
    if config.alpha_vantage_api_key:
        provider = AlphaVantageClient(config.alpha_vantage_api_key)
    else:
        logger.info("No Alpha Vantage key configured, using yfinance for prices")
        provider = YFinanceClient()
    return ReferencePrices(provider, config.ticker, config.fallback_price)
