"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from fastapi import HTTPException, Request

from rangegame.accounts import AccountService
from rangegame.agents.gateway import LLMGateway
from rangegame.agents.insights import MarketInsightService
from rangegame.config import AppConfig
from rangegame.data.prices import ReferencePrices
from rangegame.registry.db import Database
from rangegame.registry.queries import Registry
from rangegame.scoring.leaderboard import LeaderboardService
from rangegame.scoring.predictions import PredictionService
from rangegame.scoring.settlement import SettlementService


class AppState:
    """Holds shared application state initialised during lifespan."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: Registry | None = None
        self.gateway: LLMGateway | None = None
        self.prices: ReferencePrices | None = None
        self.accounts: AccountService | None = None
        self.prediction_service: PredictionService | None = None
        self.settlement_service: SettlementService | None = None
        self.leaderboard_service: LeaderboardService | None = None
        self.insight_service: MarketInsightService | None = None


# Singleton shared across the app
app_state = AppState()


def get_config() -> AppConfig:
    if app_state.config is None:
        raise RuntimeError("AppConfig not initialised")
    return app_state.config


def get_db() -> Database:
    if app_state.db is None:
        raise RuntimeError("Database not initialised")
    return app_state.db


def get_registry() -> Registry:
    if app_state.registry is None:
        raise RuntimeError("Registry not initialised")
    return app_state.registry


def get_prices() -> ReferencePrices:
    if app_state.prices is None:
        raise RuntimeError("ReferencePrices not initialised")
    return app_state.prices


def get_accounts() -> AccountService:
    if app_state.accounts is None:
        raise RuntimeError("AccountService not initialised")
    return app_state.accounts


def get_prediction_service() -> PredictionService:
    if app_state.prediction_service is None:
        raise RuntimeError("PredictionService not initialised")
    return app_state.prediction_service


def get_settlement_service() -> SettlementService:
    if app_state.settlement_service is None:
        raise RuntimeError("SettlementService not initialised")
    return app_state.settlement_service


def get_leaderboard_service() -> LeaderboardService:
    if app_state.leaderboard_service is None:
        raise RuntimeError("LeaderboardService not initialised")
    return app_state.leaderboard_service


def get_insight_service() -> MarketInsightService:
    if app_state.insight_service is None:
        raise RuntimeError("MarketInsightService not initialised")
    return app_state.insight_service


def get_current_subject(request: Request) -> str:
    """Subject set by AuthMiddleware from the session cookie."""
    subject = getattr(request.state, "subject", None)
    if not subject:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return subject


def require_admin(request: Request) -> None:
    config = get_config()
    token = request.headers.get("x-admin-token")
    if not config.admin_token or token != config.admin_token:
        raise HTTPException(status_code=403, detail="Admin token required")
