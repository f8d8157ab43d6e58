from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from rangegame.agents.gateway import LLMGateway, LLMResponse, ProviderConfig
from rangegame.agents.insights import MarketInsightService, fallback_catalysts
from rangegame.data.cache import TTLCache

TODAY = date(2025, 3, 12)
MODELS = ("grok-4", "grok-3")


def _mock_llm_response(content: str, model: str = "grok-4") -> LLMResponse:
    return LLMResponse(
        content=content,
        model=model,
        provider="xai",
        token_usage={"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
        latency_ms=500,
    )


def _mock_gateway(configured: bool = True) -> LLMGateway:
    gw = MagicMock(spec=LLMGateway)
    gw.call = AsyncMock()
    gw.has_provider.return_value = configured
    return gw


class TestFallbackCatalysts:
    def test_mentions_ticker_and_dates(self):
        text = fallback_catalysts("TSLA", TODAY)
        assert "POSITIVE CATALYSTS:" in text
        assert "NEGATIVE FORECASTS:" in text
        assert "TSLA" in text
        assert "[3/13]" in text


class TestInsight:
    @pytest.mark.asyncio
    async def test_returns_first_model_answer(self):
        gw = _mock_gateway()
        gw.call.return_value = _mock_llm_response("POSITIVE CATALYSTS:\n- [03/11] Deliveries beat")
        service = MarketInsightService(gw, "TSLA", MODELS)

        text = await service.insight(Decimal("245.00"), Decimal("250.00"), today=TODAY)

        assert "Deliveries beat" in text
        _, kwargs = gw.call.call_args
        assert kwargs["model"] == "grok-4"
        prompt = gw.call.call_args.args[1]
        assert "$245.00" in prompt
        assert "$250.00" in prompt

    @pytest.mark.asyncio
    async def test_falls_through_model_list(self):
        gw = _mock_gateway()
        gw.call.side_effect = [RuntimeError("grok-4 unavailable"), _mock_llm_response("ok", "grok-3")]
        service = MarketInsightService(gw, "TSLA", MODELS)

        assert await service.insight(Decimal("245"), Decimal("250"), today=TODAY) == "ok"
        assert [c.kwargs["model"] for c in gw.call.call_args_list] == ["grok-4", "grok-3"]

    @pytest.mark.asyncio
    async def test_all_models_fail_uses_fallback(self):
        gw = _mock_gateway()
        gw.call.side_effect = RuntimeError("down")
        service = MarketInsightService(gw, "TSLA", MODELS)

        text = await service.insight(Decimal("245"), Decimal("250"), today=TODAY)
        assert text == fallback_catalysts("TSLA", TODAY)

    @pytest.mark.asyncio
    async def test_malformed_responses_fall_back(self):
        gw = LLMGateway(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"error": {"message": "overloaded"}}),
        ))
        gw.register_provider(ProviderConfig(
            name="xai", base_url="https://api.x.ai/v1", api_key="xai-test", default_model="grok-4",
        ))
        service = MarketInsightService(gw, "TSLA", MODELS)

        text = await service.insight(Decimal("245"), Decimal("250"), today=TODAY)

        assert text == fallback_catalysts("TSLA", TODAY)
        await gw.close()

    @pytest.mark.asyncio
    async def test_unconfigured_gateway_skips_calls(self):
        gw = _mock_gateway(configured=False)
        service = MarketInsightService(gw, "TSLA", MODELS)

        text = await service.insight(Decimal("245"), Decimal("250"), today=TODAY)
        assert text == fallback_catalysts("TSLA", TODAY)
        gw.call.assert_not_called()


class TestMarketContext:
    @pytest.mark.asyncio
    async def test_caches_successful_answer(self):
        gw = _mock_gateway()
        gw.call.return_value = _mock_llm_response("context")
        service = MarketInsightService(gw, "TSLA", MODELS)

        assert await service.market_context(today=TODAY) == "context"
        assert await service.market_context(today=TODAY) == "context"
        assert gw.call.call_count == 1

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self):
        gw = _mock_gateway()
        gw.call.side_effect = [_mock_llm_response("first"), _mock_llm_response("second")]
        service = MarketInsightService(gw, "TSLA", MODELS)

        await service.market_context(today=TODAY)
        assert await service.market_context(refresh=True, today=TODAY) == "second"

    @pytest.mark.asyncio
    async def test_fallback_not_cached(self):
        gw = _mock_gateway()
        gw.call.side_effect = [RuntimeError("a"), RuntimeError("b"), _mock_llm_response("live")]
        cache = TTLCache()
        service = MarketInsightService(gw, "TSLA", MODELS, cache=cache)

        first = await service.market_context(today=TODAY)
        assert first == fallback_catalysts("TSLA", TODAY)
        assert len(cache) == 0
        assert await service.market_context(today=TODAY) == "live"

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        gw = _mock_gateway()
        gw.call.return_value = _mock_llm_response("context")
        service = MarketInsightService(gw, "TSLA", MODELS)

        await service.market_context(today=TODAY)
        service.clear_cache()
        await service.market_context(today=TODAY)
        assert gw.call.call_count == 2
