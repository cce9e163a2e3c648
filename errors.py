"""Errors raised by the timer client and its data-access layer."""

from typing import Optional


class TimerAppError(Exception):
    """Base class. `status_code` is set when the error came from an HTTP response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(TimerAppError):
    """The request was rejected before or by the backend because of its content."""


class ConflictError(ValidationError):
    """The request clashes with existing state, e.g. a timer is already open."""


class AuthError(TimerAppError):
    """Missing, invalid or expired token."""


class NetworkError(TimerAppError):
    """The request never got an HTTP response."""


class NotFoundError(TimerAppError):
    pass


class ServerError(TimerAppError):
    pass
