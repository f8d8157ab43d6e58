"""FastAPI application factory with CORS, auth middleware, and lifespan management."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from rangegame.accounts import AccountService
from rangegame.agents.gateway import LLMGateway
from rangegame.agents.insights import MarketInsightService
from rangegame.api.auth import decode_subject
from rangegame.api.deps import app_state
from rangegame.config import load_config
from rangegame.data.prices import ReferencePrices, build_reference_prices
from rangegame.errors import PredictionNotFoundError
from rangegame.registry.db import Database
from rangegame.registry.queries import Registry
from rangegame.scoring.leaderboard import LeaderboardService
from rangegame.scoring.predictions import PredictionService
from rangegame.scoring.settlement import SettlementService
from rangegame.timing.weeks import is_settlement_open, week_window_for

logger = logging.getLogger(__name__)

API_PREFIX = "/api/game"
SETTLEMENT_CHECK_SECONDS = 3600


def run_due_settlement(
    settlement: SettlementService, prices: ReferencePrices, now: datetime, tz,
) -> bool:
    """Score the week containing now if Friday's close has passed. Returns True if it ran."""
    if not is_settlement_open(now, tz):
        return False
    window = week_window_for(now, tz)
    if not settlement.has_pending(now):
        return False
    actual = prices.closing_price(window.end.date(), refresh=True)
    if actual is None:
        logger.warning("No closing price for %s yet, settlement postponed", window.end.date())
        return False
    try:
        settlement.run(actual, now=now, trigger="auto")
    except PredictionNotFoundError:
        return False
    return True


async def _weekly_settlement_loop(settlement: SettlementService, prices: ReferencePrices, tz):
    """Background task: once the Friday close has passed, settle what is still open."""
    while True:
        try:
            await asyncio.to_thread(run_due_settlement, settlement, prices, datetime.now(tz), tz)
        except Exception:
            logger.exception("Weekly settlement task failed")
        await asyncio.sleep(SETTLEMENT_CHECK_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown of DB, gateway, and dependent services."""
    config = load_config()
    if not config.auth_secret_key:
        logger.warning("AUTH_SECRET_KEY not set, sessions will not survive a restart")
        config = dataclasses.replace(config, auth_secret_key=secrets.token_urlsafe(32))

    # Database
    db = Database(config.db_dsn)
    db.connect()
    registry = Registry(db)

    # LLM Gateway
    gateway = LLMGateway.from_config(config)
    await gateway.start()

    prices = build_reference_prices(config)
    settlement_service = SettlementService(registry, config.tz)

    app_state.config = config
    app_state.db = db
    app_state.registry = registry
    app_state.gateway = gateway
    app_state.prices = prices
    app_state.accounts = AccountService(registry)
    app_state.prediction_service = PredictionService(registry, config.tz)
    app_state.settlement_service = settlement_service
    app_state.leaderboard_service = LeaderboardService(registry, config.tz)
    app_state.insight_service = MarketInsightService(
        gateway, config.ticker, config.grok_models,
        cache_ttl_seconds=config.market_context_ttl_minutes * 60,
    )

    _bg_tasks = []
    if config.enable_auto_settlement:
        _bg_tasks.append(
            asyncio.create_task(_weekly_settlement_loop(settlement_service, prices, config.tz))
        )
    logger.info("API started for %s, DB and gateway ready", config.ticker)
    yield

    for task in _bg_tasks:
        task.cancel()

    await gateway.close()
    db.close()
    logger.info("API shutdown complete")


# Session is optional on these; scoring routes check the admin token instead.
PUBLIC_PATHS = {
    f"{API_PREFIX}/auth/register",
    f"{API_PREFIX}/auth/login",
    f"{API_PREFIX}/auth/guest",
    f"{API_PREFIX}/auth/x-login",
    f"{API_PREFIX}/auth/reset-pin",
    f"{API_PREFIX}/auth/logout",
    f"{API_PREFIX}/auth/check",
    f"{API_PREFIX}/predictions/all",
    f"{API_PREFIX}/leaderboard",
    f"{API_PREFIX}/leaderboard/previous-winner",
    f"{API_PREFIX}/stock",
    f"{API_PREFIX}/insights/market-context",
    f"{API_PREFIX}/system/health",
}
PUBLIC_PREFIXES = (f"{API_PREFIX}/scoring/",)


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolve the session cookie to request.state.subject; require it on player routes."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        request.state.subject = None

        if not path.startswith(API_PREFIX):
            return await call_next(request)

        config = app_state.config
        token = request.cookies.get("session")
        if token and config and config.auth_secret_key:
            request.state.subject = decode_subject(token, config.auth_secret_key)

        if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        if request.state.subject is None:
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

        return await call_next(request)


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (useful for testing
            where deps are injected via app_state directly).
    """
    app = FastAPI(
        title="Range Game API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuthMiddleware)

    from rangegame.api.routes import (
        auth,
        insights,
        leaderboard,
        predictions,
        scoring,
        stock,
        system,
    )

    app.include_router(auth.router, prefix=API_PREFIX, tags=["auth"])
    app.include_router(predictions.router, prefix=API_PREFIX, tags=["predictions"])
    app.include_router(scoring.router, prefix=API_PREFIX, tags=["scoring"])
    app.include_router(leaderboard.router, prefix=API_PREFIX, tags=["leaderboard"])
    app.include_router(stock.router, prefix=API_PREFIX, tags=["stock"])
    app.include_router(insights.router, prefix=API_PREFIX, tags=["insights"])
    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])

    return app
