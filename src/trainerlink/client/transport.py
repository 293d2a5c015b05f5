"""Stateless HTTP transport over :class:`httpx.AsyncClient`.

:class:`HttpTransport` performs exactly one HTTP exchange per call: no
credential injection, no retries, no status-code interpretation. It is the
layer the request pipeline sends through, and the one the session manager
calls directly for token renewal so that renewal never re-enters the
pipeline.

Every request runs under the single fixed timeout of
:attr:`~trainerlink.models.ClientConfig.timeout`. Timeouts and all other
transport-level errors surface as
:class:`~trainerlink.exceptions.NetworkFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from trainerlink.exceptions import NetworkFailure
from trainerlink.models import ClientConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class HttpTransport:
    """Send single HTTP requests to the remote API.

    The underlying :class:`httpx.AsyncClient` is created on first use and
    closed by :meth:`aclose` (or on leaving the async context manager).

    Args:
        config: Supplies ``base_url`` and ``timeout``.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        async with HttpTransport(config) as transport:
            response = await transport.send("GET", "/api/system/auth/whoami/")
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._config.base_url

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HttpTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        data: Optional[dict[str, Any]] = None,
        files: Optional[list[tuple[str, Any]]] = None,
    ) -> httpx.Response:
        """Perform one HTTP request and return the raw response.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            url: Path relative to ``base_url``, or an absolute URL.
            headers: Request headers. A ``None`` value removes a default
                header.
            params: Query parameters.
            json_body: JSON-serialisable body.
            data: Form fields (multipart when *files* is given).
            files: Multipart file parts as accepted by :mod:`httpx`.

        Returns:
            The :class:`httpx.Response`, whatever its status code.

        Raises:
            NetworkFailure: On timeout, connection, or protocol errors.
        """
        client = self._ensure_client()

        request_headers = {**DEFAULT_HEADERS}
        for key, value in (headers or {}).items():
            _drop_header(request_headers, key)
            if value is not None:
                request_headers[key] = value
        if files is not None or (data is not None and json_body is None):
            # httpx generates the form/multipart content type itself
            if request_headers.get("Content-Type") == "application/json":
                del request_headers["Content-Type"]

        kwargs: dict[str, Any] = {
            "method": method,
            "url": url,
            "headers": request_headers,
            "params": params,
        }
        if files is not None:
            kwargs["files"] = files
            if data is not None:
                kwargs["data"] = data
        elif data is not None:
            kwargs["data"] = data
        elif json_body is not None:
            kwargs["json"] = json_body

        logger.debug("%s %s", method, url)
        try:
            return await client.request(**kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(
                f"Request to {url} timed out after {self._config.timeout}s"
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"Request to {url} failed: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client


def _drop_header(headers: dict[str, str], name: str) -> None:
    """Remove *name* from *headers*, case-insensitively."""
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
