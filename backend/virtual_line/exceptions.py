"""Slot allocation engine exceptions.

Every engine operation either returns a definite result or raises exactly
one of these. The HTTP layer maps them to status codes in ``main.py``.
"""


class VirtualLineError(Exception):
    """Base exception for the engine."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(VirtualLineError, ValueError):
    """Raised when inputs are malformed. Nothing has been written.

    Also a ValueError, so pydantic validators can reuse the engine's
    parsers and report failures as ordinary field errors.
    """

    status_code = 422


class NotFoundError(VirtualLineError):
    """Raised when a referenced site, slot or reservation does not exist."""

    status_code = 404


class ConflictError(VirtualLineError):
    """Raised when a slot is disabled, reserved or actively held."""

    status_code = 409


class GoneError(VirtualLineError):
    """Raised when a hold token is unknown or expired at confirm time."""

    status_code = 410


class UnavailableError(VirtualLineError):
    """Raised when the store transaction could not complete. Safe to retry."""

    status_code = 503


class NotificationFailure(VirtualLineError):
    """Outbound message could not be delivered.

    Never raised out of an engine operation; notifiers return it as a
    status on an otherwise successful result.
    """

    status_code = 502
