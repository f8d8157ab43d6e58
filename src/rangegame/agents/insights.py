"""Market commentary from an LLM, with deterministic fallback text.

Each model in the configured list is tried in order; if all fail the caller
still receives a readable catalyst summary. Only real LLM output is cached.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from rangegame.agents.gateway import LLMGateway
from rangegame.data.cache import TTLCache

logger = logging.getLogger(__name__)

PROVIDER = "xai"
MARKET_CONTEXT_KEY = "market_context"

INSIGHT_PROMPT = """As a financial analyst, provide a focused analysis of THE MOST RECENT \
news from THIS WEEK that could impact {ticker} stock price.

Current {ticker} stock price: ${current_price:.2f}
A player predicts the price will be near ${predicted_price:.2f} at Friday's close.
Current date: {today}
{context}
Reply ONLY with dated bullet points (MM/DD) under the exact headers below, \
with specific figures and expected market impact:

POSITIVE CATALYSTS:
- [MM/DD] ...

NEGATIVE CATALYSTS:
- [MM/DD] ...

If no significant recent news exists, state "No significant recent news this week"."""

MARKET_CONTEXT_PROMPT = """List the high-impact news of the last 7 days and the \
scheduled events of the next 7 days that historically move {ticker} by 3% or more \
(earnings, deliveries, competitor moves, supply chain, CPI/PPI, Fed speakers).
Current date: {today}

Use EXACTLY this layout with [MM/DD] dates:

HIGH-IMPACT RECENT NEWS (Last 7 Days):
POSITIVE CATALYSTS:
NEGATIVE CATALYSTS:

UPCOMING HIGH-IMPACT EVENTS:
POSITIVE FORECASTS:
NEGATIVE FORECASTS:"""


def _md(day: date) -> str:
    return f"{day.month}/{day.day}"


def fallback_catalysts(ticker: str, today: date) -> str:
    """Catalyst summary used when no model answers."""
    d1, d2, d3 = (today + timedelta(days=n) for n in (1, 2, 3))
    return f"""HIGH-IMPACT RECENT NEWS (Last 7 Days):
POSITIVE CATALYSTS:
No significant {ticker} news in the past 7 days

NEGATIVE CATALYSTS:
No significant {ticker} news in the past 7 days

UPCOMING HIGH-IMPACT EVENTS:
POSITIVE FORECASTS:
- [{_md(d1)}] CPI release expected to show cooling inflation, potentially supporting {ticker} by 2-3%
- [{_md(d3)}] Fed Chair speech on monetary policy, a dovish tone could lift growth stocks by 2-4%

NEGATIVE FORECASTS:
- [{_md(d2)}] PPI release may show persistent inflation pressure, potentially weighing on {ticker} by 1-2%
- [{_md(d1)}] Competitor earnings could intensify the competition narrative, moving {ticker} by 1-3%

Note: fallback summary, live market commentary is currently unavailable."""


class MarketInsightService:
    def __init__(
        self,
        gateway: LLMGateway,
        ticker: str,
        models: tuple[str, ...],
        cache_ttl_seconds: float = 1800.0,
        cache: TTLCache | None = None,
    ) -> None:
        self._gateway = gateway
        self._ticker = ticker
        self._models = models
        self._cache = cache or TTLCache(default_ttl_seconds=cache_ttl_seconds)

    async def _first_answer(self, prompt: str, max_tokens: int) -> str | None:
        if not self._gateway.has_provider(PROVIDER):
            logger.info("No LLM provider configured, using fallback text")
            return None
        for model in self._models:
            try:
                resp = await self._gateway.call(
                    PROVIDER, prompt, model=model, max_tokens=max_tokens, temperature=0.1,
                )
            except RuntimeError as e:
                logger.info("Model %s failed: %s", model, e)
                continue
            if resp.content.strip():
                logger.info("Market commentary from %s (%dms)", resp.model, resp.latency_ms)
                return resp.content
        logger.warning("All models failed, using fallback text")
        return None

    async def insight(
        self,
        current_price: Decimal,
        predicted_price: Decimal,
        historical_context: str | None = None,
        today: date | None = None,
    ) -> str:
        day = today or date.today()
        prompt = INSIGHT_PROMPT.format(
            ticker=self._ticker,
            current_price=current_price,
            predicted_price=predicted_price,
            today=day.isoformat(),
            context=f"\nContext: {historical_context}\n" if historical_context else "",
        )
        answer = await self._first_answer(prompt, max_tokens=800)
        return answer if answer is not None else fallback_catalysts(self._ticker, day)

    async def market_context(self, refresh: bool = False, today: date | None = None) -> str:
        if refresh:
            self._cache.invalidate(MARKET_CONTEXT_KEY)
        cached = self._cache.get(MARKET_CONTEXT_KEY)
        if cached is not None:
            logger.debug("Using cached market context")
            return cached

        day = today or date.today()
        prompt = MARKET_CONTEXT_PROMPT.format(ticker=self._ticker, today=day.isoformat())
        answer = await self._first_answer(prompt, max_tokens=1500)
        if answer is None:
            return fallback_catalysts(self._ticker, day)
        self._cache.set(MARKET_CONTEXT_KEY, answer)
        return answer

    def clear_cache(self) -> None:
        self._cache.invalidate(MARKET_CONTEXT_KEY)
