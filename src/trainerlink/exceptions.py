"""Exception hierarchy for trainerlink.

All exceptions inherit from :class:`TrainerlinkError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`trainerlink.exit_codes`.
The CLI entry point in :func:`trainerlink.app.main` catches
``TrainerlinkError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    TrainerlinkError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- ConfigError             (exit 1)
    +-- RemoteError             (exit 5)
    |   +-- Unauthorized        (exit 3)
    |   +-- InvalidCredentials  (exit 3)
    +-- NetworkFailure          (exit 6)
    +-- ProfileUnavailable      (exit 4)
    +-- StorageFailure          (exit 7)
"""

from __future__ import annotations

from typing import Any, Optional

from trainerlink.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROFILE_UNAVAILABLE,
    EXIT_REMOTE_ERROR,
    EXIT_STORAGE_ERROR,
)


class TrainerlinkError(Exception):
    """Base exception for all trainerlink errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`trainerlink.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(TrainerlinkError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(TrainerlinkError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class RemoteError(TrainerlinkError):
    """Raised when the remote API answers with an HTTP error status.

    Instances are decoded once at the transport boundary by
    :func:`~trainerlink.client.response.decode_remote_error` so callers
    never re-parse the response payload themselves.

    Args:
        message: Human-readable error description.
        status_code: The HTTP status code of the failed response.
        detail: The ``detail`` string from the payload, when present.
        field_errors: Per-field validation messages keyed by field name.
        reason: The HTTP reason phrase of the response.
        payload: The decoded response body, kept for diagnostics.
    """

    exit_code = EXIT_REMOTE_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        detail: Optional[str] = None,
        field_errors: Optional[dict[str, list[str]]] = None,
        reason: str = "",
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.field_errors: dict[str, list[str]] = field_errors or {}
        self.reason = reason
        self.payload = payload


class Unauthorized(RemoteError):
    """Raised on HTTP 401 once the refresh-and-retry protocol is exhausted."""

    exit_code = EXIT_AUTH_FAILURE


class InvalidCredentials(RemoteError):
    """Raised when login or registration is rejected with a 4xx response."""

    exit_code = EXIT_AUTH_FAILURE

    @classmethod
    def from_remote(cls, exc: RemoteError) -> InvalidCredentials:
        """Re-type a decoded :class:`RemoteError`, keeping all of its fields."""
        return cls(
            str(exc),
            status_code=exc.status_code,
            detail=exc.detail,
            field_errors=exc.field_errors,
            reason=exc.reason,
            payload=exc.payload,
        )


class NetworkFailure(TrainerlinkError):
    """Raised on transport-level failures, timeouts included."""

    exit_code = EXIT_CONNECTION_ERROR


class ProfileUnavailable(TrainerlinkError):
    """Raised when the profile fetch failed and no cached profile exists."""

    exit_code = EXIT_PROFILE_UNAVAILABLE


class StorageFailure(TrainerlinkError):
    """Raised when the persistent key-value store cannot be read or written."""

    exit_code = EXIT_STORAGE_ERROR
