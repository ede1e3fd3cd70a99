"""Domain errors raised by the playtime engine and store.

Handlers in app.py translate these into HTTP status codes.
"""


class PlaytimeValidationError(ValueError):
    """Duration, clock or period input that cannot be used (400/422)."""


class EntryConflictError(Exception):
    """A (player, day) slot is already taken (409)."""


class NotFoundError(LookupError):
    """Unknown player or playtime entry (404)."""
