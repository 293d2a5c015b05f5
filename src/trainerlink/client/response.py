"""Response decoding -- maps :class:`httpx.Response` errors to typed exceptions.

Error payloads of the remote API come in two shapes::

    {"detail": "Invalid credentials"}
    {"email": ["This field is required."], "password": "Too short"}

:func:`decode_remote_error` reads either shape once, at the transport
boundary, into a :class:`~trainerlink.exceptions.RemoteError` carrying the
``detail`` string and a ``field_errors`` map. :func:`error_message` turns
any exception into the human-readable text shown to the user.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import httpx

from trainerlink.exceptions import RemoteError

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first. If that fails (e.g. the
    response is HTML or plain text), returns the raw text. Returns
    ``None`` for responses with no content.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def format_field_name(field: str) -> str:
    """Format a payload field name for display.

    Examples: ``"email"`` -> ``"Email"``, ``"confirmPassword"`` ->
    ``"Confirm Password"``.
    """
    spaced = re.sub(r"([A-Z])", r" \1", field).strip()
    return spaced[:1].upper() + spaced[1:]


def parse_field_errors(data: dict[str, Any]) -> dict[str, list[str]]:
    """Collect per-field messages from an error payload, ignoring ``detail``."""
    errors: dict[str, list[str]] = {}
    for field, messages in data.items():
        if field == "detail":
            continue
        if isinstance(messages, list):
            errors[field] = [str(m) for m in messages]
        elif isinstance(messages, str):
            errors[field] = [messages]
    return errors


def decode_remote_error(
    response: httpx.Response,
    error_cls: type[RemoteError] = RemoteError,
) -> RemoteError:
    """Decode an error response into *error_cls*.

    Args:
        response: A response with a 4xx/5xx status code.
        error_cls: The :class:`RemoteError` subclass to instantiate.

    Returns:
        The decoded exception (not raised).
    """
    payload = extract_response_data(response)
    detail: Optional[str] = None
    field_errors: dict[str, list[str]] = {}

    if isinstance(payload, dict):
        raw_detail = payload.get("detail")
        if isinstance(raw_detail, str):
            detail = raw_detail
        field_errors = parse_field_errors(payload)

    status = response.status_code
    msg = detail or _join_field_errors(field_errors)
    if not msg and isinstance(payload, str):
        msg = payload[:200]
    prefix = f"HTTP {status}"
    full_msg = f"{prefix}: {msg}" if msg else prefix

    return error_cls(
        full_msg,
        status_code=status,
        detail=detail,
        field_errors=field_errors,
        reason=response.reason_phrase or "",
        payload=payload,
    )


def error_message(error: object, default: str = DEFAULT_ERROR_MESSAGE) -> str:
    """Extract a user-facing message from *error*.

    Priority for :class:`RemoteError`: the payload ``detail``, then the
    field errors (``"Field Name: msg1, msg2"`` one per line), then the HTTP
    reason phrase. Any other exception yields its own message; a plain
    string is returned as-is; everything else gets *default*.
    """
    if not error:
        return default

    if isinstance(error, RemoteError):
        if error.detail:
            return error.detail
        if error.field_errors:
            return _join_field_errors(error.field_errors)
        if error.reason:
            return error.reason

    if isinstance(error, Exception):
        return str(error) or default

    if isinstance(error, str):
        return error

    return default


def _join_field_errors(field_errors: dict[str, list[str]]) -> str:
    return "\n".join(
        f"{format_field_name(field)}: {', '.join(messages)}"
        for field, messages in field_errors.items()
    )
