from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

DEFAULT_GROK_MODELS = ("grok-4", "grok-3", "grok-2", "grok-beta")


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    grok_api_key: str = ""
    alpha_vantage_api_key: str = ""
    ticker: str = "TSLA"
    timezone: str = "America/New_York"
    fallback_price: Decimal = Decimal("340.00")
    grok_models: tuple[str, ...] = field(default=DEFAULT_GROK_MODELS)
    market_context_ttl_minutes: int = 30
    auth_secret_key: str = ""
    auth_token_expiry_hours: int = 168
    admin_token: str = ""
    enable_auto_settlement: bool = True

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    models = tuple(
        m.strip() for m in os.environ.get("GROK_MODELS", "").split(",") if m.strip()
    )

    return AppConfig(
        db_dsn=os.environ.get("DATABASE_URL", ""),
        grok_api_key=os.environ.get("GROK_API_KEY", ""),
        alpha_vantage_api_key=os.environ.get("ALPHA_VANTAGE_API_KEY", ""),
        ticker=os.environ.get("GAME_TICKER", "TSLA"),
        timezone=os.environ.get("GAME_TIMEZONE", "America/New_York"),
        fallback_price=Decimal(os.environ.get("FALLBACK_PRICE", "340.00")),
        grok_models=models or DEFAULT_GROK_MODELS,
        market_context_ttl_minutes=int(os.environ.get("MARKET_CONTEXT_TTL_MINUTES", "30")),
        auth_secret_key=os.environ.get("AUTH_SECRET_KEY", ""),
        auth_token_expiry_hours=int(os.environ.get("AUTH_TOKEN_EXPIRY_HOURS", "168")),
        admin_token=os.environ.get("ADMIN_TOKEN", ""),
        enable_auto_settlement=_flag("ENABLE_AUTO_SETTLEMENT", "true"),
    )
