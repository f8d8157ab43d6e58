"""Authentication utilities: PIN hashing and JWT session tokens."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import bcrypt as _bcrypt
from jose import JWTError, jwt

from rangegame.errors import AuthError

ALGORITHM = "HS256"

_PIN_RE = re.compile(r"^\d{4}$")


def check_pin_format(pin: str) -> None:
    if not _PIN_RE.match(pin or ""):
        raise AuthError("Password must be exactly 4 digits")


def hash_pin(pin: str) -> str:
    return _bcrypt.hashpw(pin.encode(), _bcrypt.gensalt()).decode()


def verify_pin(plain: str, hashed: str | None) -> bool:
    """Check a plaintext PIN against a bcrypt hash. Missing hashes never match."""
    if not hashed:
        return False
    return _bcrypt.checkpw(plain.encode(), hashed.encode())


def create_token(subject: str, secret: str, expiry_hours: int) -> str:
    """Create a signed JWT carrying the user subject and an expiration claim."""
    exp = datetime.now(timezone.utc) + timedelta(hours=expiry_hours)
    return jwt.encode({"sub": subject, "exp": exp}, secret, algorithm=ALGORITHM)


def decode_subject(token: str, secret: str) -> str | None:
    """Return the token's subject if it is valid and not expired."""
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return claims.get("sub")
