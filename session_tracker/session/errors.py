"""Errors raised by the live session core."""


class SessionError(Exception):
    """Base class for live session errors."""


class IllegalTransition(SessionError):
    """Operation is not allowed in the session's current state."""


class InvalidAmount(SessionError, ValueError):
    """Amount is non-positive, negative or not a number."""


class NoActiveSession(SessionError):
    """Operation requires a live session but none exists."""


class ValidationError(SessionError, ValueError):
    """Staker configuration failed validation."""


class PersistenceError(SessionError):
    """A read or write against the store failed. Retryable."""


class DurabilityViolation(SessionError):
    """The historical session record could not be confirmed as written.

    Raised only by ``end()``. The live session is left in memory so the
    caller can retry.
    """
