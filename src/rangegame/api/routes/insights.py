"""LLM market commentary endpoints."""

from __future__ import annotations

import asyncio
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from rangegame.agents.insights import MarketInsightService
from rangegame.api.deps import get_insight_service, get_prices
from rangegame.data.prices import ReferencePrices

router = APIRouter()


class InsightRequest(BaseModel):
    predictedPrice: Decimal
    currentPrice: Decimal | None = None
    historicalContext: str | None = None


@router.get("/insights/market-context")
async def market_context(
    refresh: bool = Query(False),
    service: MarketInsightService = Depends(get_insight_service),
) -> dict:
    return {"analysis": await service.market_context(refresh=refresh)}


@router.post("/insights")
async def insight(
    body: InsightRequest,
    service: MarketInsightService = Depends(get_insight_service),
    prices: ReferencePrices = Depends(get_prices),
) -> dict:
    """Commentary on the week's catalysts for a player's predicted price."""
    if body.predictedPrice <= 0:
        raise HTTPException(status_code=400, detail="Predicted price must be positive")
    current = body.currentPrice
    if current is None:
        current = await asyncio.to_thread(prices.current_price)
    analysis = await service.insight(current, body.predictedPrice, body.historicalContext)
    return {"analysis": analysis}
