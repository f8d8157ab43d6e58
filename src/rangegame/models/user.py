from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class AuthProvider(StrEnum):
    GUEST = "guest"
    TWITTER = "twitter"


@dataclass
class User:
    subject: str
    username: str
    provider: AuthProvider = AuthProvider.GUEST
    email: str | None = None
    password_hash: str | None = None
    twitter_id: str | None = None
    name: str | None = None
    image: str | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
