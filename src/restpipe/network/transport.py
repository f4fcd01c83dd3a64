# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Request/response types and the transports that put them on the wire.

The pipeline only relies on the ``AsyncTransport`` contract: send one
``HttpRequest`` and return one ``HttpResponse``. TLS, pooling and DNS belong
to the underlying HTTP client (httpx or aiohttp).
"""

import asyncio
import logging
from collections.abc import AsyncIterable, Iterable
from typing import Any, Optional, Protocol, Union, runtime_checkable

import aiohttp
import httpx
import orjson

from restpipe.errors import (
    TransportError,
    TransportTimeoutError,
    ValidationError,
    map_http_error,
)

__all__ = [
    "HttpRequest",
    "HttpResponse",
    "AsyncTransport",
    "HttpxTransport",
    "AiohttpTransport",
]

logger = logging.getLogger(__name__)

BodyStream = Union[Iterable[bytes], AsyncIterable[bytes]]

_UNSET: Any = object()


class _OneShotStream:
    """A body stream shared by every attempt of a request; readable once."""

    def __init__(self, source: BodyStream):
        self.source = source
        self.consumed = False

    def take(self) -> BodyStream:
        if self.consumed:
            raise TransportError(
                "Request body stream already consumed; it cannot be resent",
                retryable=False,
            )
        self.consumed = True
        return self.source


class HttpRequest:
    """
    One logical HTTP request.

    Buffered bodies (bytes, str, JSON values) can be re-read by every retry
    attempt. Streamed bodies can be handed to a transport only once.
    """

    def __init__(
        self,
        method: str,
        url: str,
        headers: Optional[Union[httpx.Headers, dict[str, str]]] = None,
        *,
        content: Optional[Union[bytes, str, BodyStream]] = None,
        json: Any = _UNSET,
        params: Optional[dict[str, Any]] = None,
    ):
        self.method = method.upper()
        self.url = str(httpx.URL(url, params=params)) if params else url
        self.headers = httpx.Headers(headers)
        self.context: dict[str, Any] = {}
        self._stream: Optional[_OneShotStream] = None
        self._content: Optional[bytes] = None

        if json is not _UNSET:
            if content is not None:
                raise ValidationError("Pass either content or json, not both")
            self._content = orjson.dumps(json)
            self.headers.setdefault("Content-Type", "application/json")
        elif isinstance(content, str):
            self._content = content.encode("utf-8")
        elif isinstance(content, (bytes, bytearray)):
            self._content = bytes(content)
        elif content is not None:
            self._stream = _OneShotStream(content)

    def __repr__(self) -> str:
        return f"<HttpRequest [{self.method}] {self.url}>"

    @property
    def is_replayable(self) -> bool:
        return self._stream is None

    @property
    def content(self) -> Optional[bytes]:
        """The buffered body, or ``None`` for empty and streamed bodies."""
        return self._content

    def iter_body(self) -> Optional[Union[bytes, BodyStream]]:
        """
        Hand the body to a transport.

        Raises:
            TransportError: (not retryable) if the stream was already handed out.
        """
        if self._stream is None:
            return self._content
        return self._stream.take()

    def copy(self) -> "HttpRequest":
        """A fresh attempt of the same request: own headers and context, same body."""
        clone = HttpRequest.__new__(HttpRequest)
        clone.method = self.method
        clone.url = self.url
        clone.headers = httpx.Headers(self.headers)
        clone.context = dict(self.context)
        clone._content = self._content
        clone._stream = self._stream
        return clone


class HttpResponse:
    """A fully read HTTP response tied to the request that produced it."""

    def __init__(
        self,
        status_code: int,
        headers: Optional[Union[httpx.Headers, dict[str, str]]] = None,
        content: bytes = b"",
        *,
        request: HttpRequest,
    ):
        self.status_code = status_code
        self.headers = httpx.Headers(headers)
        self.content = content
        self.request = request
        self.attempts = 1

    def __repr__(self) -> str:
        return f"<HttpResponse [{self.status_code}]>"

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def text(self, encoding: str = "utf-8") -> str:
        return self.content.decode(encoding, errors="replace")

    def json(self) -> Any:
        if not self.content:
            return None
        return orjson.loads(self.content)

    def raise_for_status(self) -> "HttpResponse":
        """Raise the typed ``HttpStatusError`` for 4xx/5xx, else return self."""
        if self.is_error:
            raise map_http_error(self)
        return self


@runtime_checkable
class AsyncTransport(Protocol):
    async def send(self, request: HttpRequest) -> HttpResponse: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """
    Transport backed by ``httpx.AsyncClient``.

    A client passed in stays owned by the caller; a client created here is
    closed by ``close()``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: Optional[float] = 60.0,
        **client_kwargs: Any,
    ):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_kwargs = client_kwargs
        self._closed = False

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, **self._client_kwargs
            )
        return self._client

    async def send(self, request: HttpRequest) -> HttpResponse:
        if self._closed:
            raise TransportError("Transport is closed", retryable=False)
        client = self._get_client()
        try:
            response = await client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=_async_content(request.iter_body()),
            )
        except httpx.TimeoutException as e:
            raise TransportTimeoutError(
                f"Request timed out: {e}", original_exception=e
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                f"Connection error: {e}", original_exception=e
            ) from e
        return HttpResponse(
            response.status_code,
            response.headers,
            response.content,
            request=request,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class AiohttpTransport:
    """Transport backed by ``aiohttp.ClientSession``."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        timeout: Optional[float] = 60.0,
    ):
        self.timeout = timeout
        self.http_session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """
        Get or create an HTTP session.

        Returns:
            An aiohttp.ClientSession instance.
        """
        if self.http_session is None or self.http_session.closed:
            self.http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self.http_session

    async def send(self, request: HttpRequest) -> HttpResponse:
        session = await self._get_session()
        timeout_obj = aiohttp.ClientTimeout(total=self.timeout)
        body = request.iter_body()
        if body is not None and not isinstance(body, (bytes, AsyncIterable)):
            # aiohttp streams async iterables only
            body = b"".join(body)
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers.multi_items(),
                data=body,
                timeout=timeout_obj,
            ) as response:
                content = await response.read()
                headers = httpx.Headers(list(response.headers.items()))
                status = response.status
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(
                f"Request timed out after {self.timeout}s", original_exception=e
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Connection error: {e}", original_exception=e
            ) from e
        return HttpResponse(status, headers, content, request=request)

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self.http_session and not self.http_session.closed and self._owns_session:
            await self.http_session.close()
        self.http_session = None

    async def __aenter__(self) -> "AiohttpTransport":
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _async_content(body: Any) -> Any:
    # httpx.AsyncClient streams async iterables only
    if body is None or isinstance(body, (bytes, AsyncIterable)):
        return body

    async def _stream() -> Any:
        for chunk in body:
            yield chunk

    return _stream()
