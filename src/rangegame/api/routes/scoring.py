"""Administrative endpoints: weekly scoring, legacy migration, weekly reset."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from rangegame.api.deps import (
    get_config,
    get_prediction_service,
    get_prices,
    get_settlement_service,
    require_admin,
)
from rangegame.api.routes.shared import scoring_result_out
from rangegame.config import AppConfig
from rangegame.data.prices import ReferencePrices
from rangegame.errors import PredictionNotFoundError
from rangegame.scoring.predictions import PredictionService
from rangegame.scoring.settlement import SettlementService
from rangegame.timing.weeks import is_settlement_open, week_window_for

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


class ScoringRequest(BaseModel):
    actualPrice: Decimal | None = None
    force: bool = False


@router.post("/scoring/run")
def run_scoring(
    body: ScoringRequest | None = None,
    config: AppConfig = Depends(get_config),
    service: SettlementService = Depends(get_settlement_service),
    prices: ReferencePrices = Depends(get_prices),
) -> dict:
    """Settle the current week. Refused before Friday's close unless forced."""
    body = body or ScoringRequest()
    now = datetime.now(config.tz)
    if not body.force and not is_settlement_open(now, config.tz):
        raise HTTPException(
            status_code=400,
            detail="Scores can only be calculated after market close on Friday",
        )

    actual = body.actualPrice
    if actual is None:
        actual = prices.closing_price(
            week_window_for(now, config.tz).end.date(), refresh=True,
        )
    if actual is None:
        raise HTTPException(status_code=503, detail="Closing price unavailable")
    if actual <= 0:
        raise HTTPException(status_code=400, detail="Actual price must be positive")

    try:
        result = service.run(actual, now=now, trigger="api")
    except PredictionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True, "result": scoring_result_out(result)}


@router.post("/scoring/migrate-legacy")
def migrate_legacy(service: PredictionService = Depends(get_prediction_service)) -> dict:
    converted = service.migrate_legacy()
    return {"ok": True, "converted": converted}


@router.post("/scoring/reset-week")
def reset_week(service: PredictionService = Depends(get_prediction_service)) -> dict:
    deleted = service.reset_week()
    return {"ok": True, "deleted": deleted}
