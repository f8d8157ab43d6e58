"""Game exceptions, one class per user-facing failure kind."""

from __future__ import annotations


class GameError(Exception):
    """Base class for errors scoped to a single request or record."""


class RangeValidationError(GameError, ValueError):
    """A submitted range is malformed or outside the allowed policy."""


class PredictionNotFoundError(GameError):
    """No prediction exists for the requested id or (user, week) pair."""


class PredictionSettledError(GameError):
    """The prediction already has a settlement and can no longer change."""


class DuplicatePredictionError(GameError):
    """A prediction already exists for this (user, week) pair."""


class AuthError(GameError):
    """Credentials were missing or did not match."""


class UserExistsError(GameError):
    """Username, email or external id is already registered."""
