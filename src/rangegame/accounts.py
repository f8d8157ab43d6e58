"""Player accounts: PIN accounts, guests, and X (Twitter) profiles."""

from __future__ import annotations

import logging
import re
import time

from rangegame.api.auth import check_pin_format, hash_pin, verify_pin
from rangegame.errors import AuthError, UserExistsError
from rangegame.models.user import AuthProvider, User
from rangegame.registry.queries import Registry

logger = logging.getLogger(__name__)


def new_subject(username: str, prefix: str = "user") -> str:
    slug = re.sub(r"[^a-z0-9]", "", username.lower()) or "player"
    return f"{prefix}_{slug}_{int(time.time() * 1000)}"


class AccountService:
    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def register(self, username: str, email: str, pin: str) -> User:
        check_pin_format(pin)
        user = User(
            subject=new_subject(username),
            username=username,
            email=email,
            password_hash=hash_pin(pin),
            provider=AuthProvider.GUEST,
        )
        created = self._registry.create_user(user)
        logger.info("Registered %s as %s", username, created.subject)
        return created

    def login(self, username: str, pin: str) -> User:
        check_pin_format(pin)
        user = self._registry.get_user_by_username(username)
        if user is None:
            raise AuthError(
                "No account found with this nickname. Please check your nickname "
                "or sign up for a new account."
            )
        if not verify_pin(pin, user.password_hash):
            logger.info("Incorrect PIN for %s", username)
            raise AuthError("Incorrect password. Please try again.")
        self._registry.touch_login(user.subject)
        return user

    def guest_login(self, username: str) -> User:
        """Reuse a password-less guest account or create one."""
        user = self._registry.get_user_by_username(username)
        if user is not None:
            if user.password_hash or user.provider != AuthProvider.GUEST:
                raise UserExistsError("This nickname is taken. Log in with your password instead.")
            self._registry.touch_login(user.subject)
            return user
        return self._registry.create_user(User(subject=new_subject(username), username=username))

    def x_login(
        self, twitter_id: str, username: str, name: str | None = None, image: str | None = None,
    ) -> User:
        existing = self._registry.find_twitter_user(twitter_id, username)
        if existing is not None:
            if existing.twitter_id not in (None, twitter_id):
                raise UserExistsError("This username belongs to another X account")
            if existing.twitter_id is None and existing.password_hash:
                raise UserExistsError("This nickname is taken. Log in with your password instead.")
            self._registry.touch_login(existing.subject, name=name, image=image)
            return existing
        user = User(
            subject=f"x_user_{twitter_id}_{int(time.time() * 1000)}",
            username=username,
            twitter_id=twitter_id,
            name=name,
            image=image,
            provider=AuthProvider.TWITTER,
        )
        created = self._registry.create_user(user)
        logger.info("Registered X user %s as %s", username, created.subject)
        return created

    def reset_pin(self, username: str, email: str, new_pin: str) -> User:
        check_pin_format(new_pin)
        user = self._registry.get_user_by_username(username)
        if user is None or not user.email or user.email.lower() != email.lower():
            raise AuthError("No account found with this nickname and email")
        self._registry.update_password_hash(user.subject, hash_pin(new_pin))
        logger.info("PIN reset for %s", username)
        return user
