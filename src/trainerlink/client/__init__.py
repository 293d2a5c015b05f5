"""HTTP client module for trainerlink.

Provides the layers every remote call goes through:

    :class:`HttpTransport` -- stateless single-request sender backed by
    :class:`httpx.AsyncClient`.
    :class:`RequestPipeline` -- interceptor chain adding bearer tokens,
    content-type enforcement, and refresh-and-retry on ``401``.

Example::

    from trainerlink.client import HttpTransport, RequestPipeline

    async with HttpTransport(config) as transport:
        pipeline = RequestPipeline(transport)
        resp = await pipeline.get("/api/system/auth/whoami/")
"""

from trainerlink.client.pipeline import (
    BearerTokenInterceptor,
    ContentTypeInterceptor,
    Interceptor,
    RefreshRetryInterceptor,
    RequestContext,
    RequestPipeline,
)
from trainerlink.client.transport import HttpTransport

__all__ = [
    "BearerTokenInterceptor",
    "ContentTypeInterceptor",
    "HttpTransport",
    "Interceptor",
    "RefreshRetryInterceptor",
    "RequestContext",
    "RequestPipeline",
]
