"""Prediction endpoints: submit, revise, and read weekly predictions."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from rangegame.api.deps import (
    get_current_subject,
    get_prediction_service,
    get_prices,
    get_registry,
)
from rangegame.api.routes.shared import prediction_out
from rangegame.data.prices import ReferencePrices
from rangegame.errors import (
    PredictionNotFoundError,
    PredictionSettledError,
    RangeValidationError,
)
from rangegame.registry.queries import Registry
from rangegame.scoring.predictions import PredictionService

router = APIRouter()


class RangeRequest(BaseModel):
    minPrice: Decimal
    maxPrice: Decimal


def _display_name(registry: Registry, subject: str) -> str:
    user = registry.get_user_by_subject(subject)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user.username


@router.post("/predictions")
def submit_prediction(
    body: RangeRequest,
    response: Response,
    subject: str = Depends(get_current_subject),
    registry: Registry = Depends(get_registry),
    service: PredictionService = Depends(get_prediction_service),
    prices: ReferencePrices = Depends(get_prices),
) -> dict:
    """Create this week's prediction, or revise it if one already exists."""
    display_name = _display_name(registry, subject)
    try:
        prediction, created = service.submit(
            subject, display_name, body.minPrice, body.maxPrice, prices.current_price(),
        )
    except RangeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PredictionSettledError as e:
        raise HTTPException(status_code=409, detail=str(e))
    response.status_code = 201 if created else 200
    return {"prediction": prediction_out(prediction), "created": created}


@router.put("/predictions/{prediction_id}")
def revise_prediction(
    prediction_id: int,
    body: RangeRequest,
    subject: str = Depends(get_current_subject),
    service: PredictionService = Depends(get_prediction_service),
    prices: ReferencePrices = Depends(get_prices),
) -> dict:
    try:
        prediction = service.revise(
            prediction_id, subject, body.minPrice, body.maxPrice, prices.current_price(),
        )
    except RangeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PredictionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PredictionSettledError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"prediction": prediction_out(prediction)}


@router.get("/predictions/current")
def current_prediction(
    subject: str = Depends(get_current_subject),
    service: PredictionService = Depends(get_prediction_service),
) -> dict:
    prediction = service.current_week_for(subject)
    return {"prediction": prediction_out(prediction) if prediction else None}


@router.get("/predictions/history")
def prediction_history(
    limit: int = Query(52, ge=1, le=520),
    subject: str = Depends(get_current_subject),
    service: PredictionService = Depends(get_prediction_service),
) -> dict:
    items = service.history_for(subject, limit=limit)
    return {"predictions": [prediction_out(p) for p in items], "total": len(items)}


@router.get("/predictions/all")
def all_predictions(
    limit: int = Query(100, ge=1, le=500),
    service: PredictionService = Depends(get_prediction_service),
) -> dict:
    """Everyone's current-week predictions."""
    items = service.current_week_all(limit=limit)
    return {"predictions": [prediction_out(p) for p in items], "total": len(items)}
