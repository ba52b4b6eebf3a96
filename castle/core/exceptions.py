"""
Custom exceptions.

Everything raised on purpose by this package derives from CastleError, so the API layer can translate them in one place.
"""


class CastleError(Exception):
    """Top-level exception of the application."""


# --- DOMAIN ---
class GameError(CastleError):
    """Anything going wrong with the rules of play or the state of a game."""


class GameStateError(GameError):
    """Operation requested while the game/session is not in a state that allows it."""


class InvalidFENError(GameError):
    """Position string that the rules oracle cannot read."""


class LessonScriptError(GameError):
    """An opening script that cannot be played from its own start position."""


# --- BOUNDARIES ---
class InvalidRequestError(CastleError):
    """Request payload did not pass validation."""


class RepositoryError(CastleError):
    """Persistence layer failures."""


class NotFoundError(RepositoryError):
    """Record with the requested key does not exist."""


class DuplicateRecordError(RepositoryError):
    """Record with the same unique key already exists."""


class AuthenticationError(CastleError):
    """Missing, unknown or expired credentials."""


class PersistenceError(CastleError):
    """The remote persistence service failed (network or non-auth error status)."""


class LanguageModelError(CastleError):
    """The hosted language model failed or returned nothing usable."""


class AccessDeniedError(CastleError):
    """Valid credentials, but for another user's data."""
