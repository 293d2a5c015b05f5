"""Request pipeline -- interceptor chain with bearer injection and refresh-and-retry.

This module provides three layers:

* :class:`RequestContext` -- a mutable dataclass carrying one request
  through the chain, including the one-shot ``retried`` flag.
* :class:`Interceptor` and its built-in implementations:

  - :class:`BearerTokenInterceptor` sets ``Authorization: Bearer <token>``
    on every non-public request, reading the token from the in-memory
    session rather than from storage.
  - :class:`ContentTypeInterceptor` forces the body content type, overriding
    whatever the caller passed.
  - :class:`RefreshRetryInterceptor` answers a ``401`` on a protected
    endpoint by renewing the access token and replaying the request once.

* :class:`RequestPipeline` -- runs pre-request interceptors in registration
  order, sends through the :class:`~trainerlink.client.transport.HttpTransport`,
  runs post-response interceptors, and maps error statuses to typed
  exceptions.

Requests to :data:`~trainerlink.endpoints.PUBLIC_ENDPOINTS` get neither a
bearer token nor the refresh protocol; a ``401`` from them reaches the caller
unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from trainerlink.client.response import decode_remote_error
from trainerlink.client.transport import HttpTransport
from trainerlink.endpoints import is_public_endpoint
from trainerlink.exceptions import TrainerlinkError, Unauthorized

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]
Renewer = Callable[[], Awaitable[str]]


@dataclass
class RequestContext:
    """Mutable request state threaded through the interceptor chain.

    Attributes:
        method: HTTP method (e.g. ``"GET"``).
        url: Path relative to the API base URL, or an absolute URL.
        headers: Request headers (mutable). A ``None`` value asks the
            transport to drop that header.
        params: Query parameters (mutable).
        json_body: JSON-serialisable body, if any.
        data: Form fields, if any.
        files: Multipart file parts, if any.
        retried: Set once the refresh protocol has replayed this request.
    """

    method: str
    url: str
    headers: dict[str, Optional[str]] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    json_body: Any = None
    data: Optional[dict[str, Any]] = None
    files: Optional[list[tuple[str, Any]]] = None
    retried: bool = False

    @property
    def is_public(self) -> bool:
        return is_public_endpoint(self.url)

    @property
    def is_multipart(self) -> bool:
        return self.files is not None

    @property
    def has_body(self) -> bool:
        return self.json_body is not None or self.data is not None or self.files is not None

    def set_header(self, name: str, value: Optional[str]) -> None:
        """Set *name*, replacing any existing header that differs only in case."""
        for key in [k for k in self.headers if k.lower() == name.lower()]:
            del self.headers[key]
        self.headers[name] = value

    async def send(self, transport: HttpTransport) -> httpx.Response:
        """Send this request once through *transport*."""
        return await transport.send(
            self.method,
            self.url,
            headers=self.headers,
            params=self.params or None,
            json_body=self.json_body,
            data=self.data,
            files=self.files,
        )


class Interceptor:
    """Base class for pipeline interceptors.

    Both hooks default to no-ops so subclasses only override the phase they
    care about.
    """

    async def on_pre_request(self, ctx: RequestContext) -> None:
        """Inspect or modify *ctx* before it is sent."""

    async def on_post_response(
        self, ctx: RequestContext, response: httpx.Response
    ) -> httpx.Response:
        """Inspect *response*; the returned response replaces it for later interceptors."""
        return response


class BearerTokenInterceptor(Interceptor):
    """Attach the current access token to every non-public request.

    Args:
        token_provider: Returns the in-memory access token, or ``None``
            when there is no session.
    """

    def __init__(self, token_provider: TokenProvider) -> None:
        self._token_provider = token_provider

    async def on_pre_request(self, ctx: RequestContext) -> None:
        if ctx.is_public:
            return
        token = self._token_provider()
        if token:
            ctx.set_header("Authorization", f"Bearer {token}")


class ContentTypeInterceptor(Interceptor):
    """Force the body content type so the server always parses it the same way.

    JSON bodies are sent as ``application/json``. For multipart bodies the
    caller's value is dropped and the transport emits
    ``multipart/form-data`` with its generated boundary.
    """

    async def on_pre_request(self, ctx: RequestContext) -> None:
        if not ctx.has_body:
            return
        if ctx.is_multipart or (ctx.data is not None and ctx.json_body is None):
            ctx.set_header("Content-Type", None)
        else:
            ctx.set_header("Content-Type", "application/json")


class RefreshRetryInterceptor(Interceptor):
    """Renew the access token on ``401`` and replay the request exactly once.

    The renewal itself, including the session-loss side effects on failure,
    belongs to *renew* (normally
    :meth:`~trainerlink.auth.manager.SessionManager.renew_access_token`).
    Whatever goes wrong during renewal, the caller receives the original
    :class:`~trainerlink.exceptions.Unauthorized`, never the renewal error.

    Args:
        transport: Used for the replay, so it bypasses the interceptor chain.
        renew: Coroutine function returning a fresh access token.
        single_flight: When ``True``, concurrent 401s share one in-flight
            renewal instead of each starting their own.
    """

    def __init__(
        self,
        transport: HttpTransport,
        renew: Renewer,
        single_flight: bool = True,
    ) -> None:
        self._transport = transport
        self._renew = renew
        self._single_flight = single_flight
        self._inflight: Optional[asyncio.Future[str]] = None

    async def on_post_response(
        self, ctx: RequestContext, response: httpx.Response
    ) -> httpx.Response:
        if response.status_code != 401 or ctx.retried or ctx.is_public:
            return response

        ctx.retried = True
        original = decode_remote_error(response, Unauthorized)

        try:
            token = await self._renewed_token()
        except TrainerlinkError as exc:
            logger.debug("Token renewal failed for %s %s: %s", ctx.method, ctx.url, exc)
            raise original from exc

        ctx.set_header("Authorization", f"Bearer {token}")
        logger.debug("Replaying %s %s with a renewed token", ctx.method, ctx.url)
        return await ctx.send(self._transport)

    async def _renewed_token(self) -> str:
        if not self._single_flight:
            return await self._renew()
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._shared_renewal())
        return await asyncio.shield(self._inflight)

    async def _shared_renewal(self) -> str:
        try:
            return await self._renew()
        finally:
            self._inflight = None


class RequestPipeline:
    """Interceptor chain in front of an :class:`HttpTransport`.

    Args:
        transport: The transport every request is finally sent through.
        interceptors: Ordered interceptors. Pre-request hooks run in this
            order, and so do post-response hooks.

    Example::

        pipeline = RequestPipeline(transport, [
            BearerTokenInterceptor(lambda: session.access_token),
            ContentTypeInterceptor(),
            RefreshRetryInterceptor(transport, manager.renew_access_token),
        ])
        response = await pipeline.get("/api/bookings/")
    """

    def __init__(
        self,
        transport: HttpTransport,
        interceptors: Optional[list[Interceptor]] = None,
    ) -> None:
        self._transport = transport
        self._interceptors = list(interceptors or [])

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        data: Optional[dict[str, Any]] = None,
        files: Optional[list[tuple[str, Any]]] = None,
    ) -> httpx.Response:
        """Send a request through the interceptor chain.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            url: Path relative to the API base URL, or an absolute URL.
            params: Query parameters.
            headers: Extra request headers.
            json_body: JSON-serialisable body.
            data: Form fields (multipart when *files* is given).
            files: Multipart file parts.

        Returns:
            The successful (status < 400) :class:`httpx.Response`.

        Raises:
            Unauthorized: On 401 after the refresh protocol is exhausted or
                not applicable.
            RemoteError: On any other 4xx / 5xx status.
            NetworkFailure: On transport-level errors.
        """
        ctx = RequestContext(
            method=method.upper(),
            url=url,
            headers=dict(headers or {}),
            params=dict(params or {}),
            json_body=json_body,
            data=data,
            files=files,
        )

        for interceptor in self._interceptors:
            await interceptor.on_pre_request(ctx)

        response = await ctx.send(self._transport)

        for interceptor in self._interceptors:
            response = await interceptor.on_post_response(ctx, response)

        self._raise_for_status(ctx, response)
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _raise_for_status(self, ctx: RequestContext, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return
        logger.debug("%s %s failed with HTTP %d", ctx.method, ctx.url, status)
        if status == 401:
            raise decode_remote_error(response, Unauthorized)
        raise decode_remote_error(response)
