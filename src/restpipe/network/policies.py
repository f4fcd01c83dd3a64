# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Pipeline policies.

A policy receives the outgoing request and a ``next_`` callable that runs the
rest of the chain. Policies earlier in the chain see the request first and
the response last.
"""

import email.utils
import logging
import platform
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol, Union

import httpx

from restpipe.config import HttpLogDetailLevel, HttpLogOptions
from restpipe.errors import ResponseValidationError, ValidationError
from restpipe.network.transport import HttpRequest, HttpResponse
from restpipe.utils import maybe_await

__all__ = [
    "NextPolicy",
    "HTTPPolicy",
    "SansIOHTTPPolicy",
    "HeadersPolicy",
    "UserAgentPolicy",
    "RequestIdPolicy",
    "AddDatePolicy",
    "AccessToken",
    "ApiKeyCredential",
    "TokenCredential",
    "ApiKeyCredentialPolicy",
    "BearerTokenCredentialPolicy",
    "ResponseValidationPolicy",
    "HttpLoggingPolicy",
]

logger = logging.getLogger(__name__)

NextPolicy = Callable[[HttpRequest], Awaitable[HttpResponse]]

REDACTED = "REDACTED"


class HTTPPolicy(ABC):
    """A request/response interceptor."""

    @abstractmethod
    async def send(self, request: HttpRequest, next_: NextPolicy) -> HttpResponse:
        """Process ``request``, usually by awaiting ``next_(request)``."""


class SansIOHTTPPolicy(HTTPPolicy):
    """
    A policy that only observes or mutates around the call.

    Subclasses override any of ``on_request``, ``on_response`` and
    ``on_exception``; each hook may be sync or async. Exceptions always
    propagate after ``on_exception`` ran.
    """

    def on_request(self, request: HttpRequest) -> Any:
        return None

    def on_response(self, request: HttpRequest, response: HttpResponse) -> Any:
        return None

    def on_exception(self, request: HttpRequest, exc: BaseException) -> Any:
        return None

    async def send(self, request: HttpRequest, next_: NextPolicy) -> HttpResponse:
        await maybe_await(self.on_request, request)
        try:
            response = await next_(request)
        except Exception as exc:
            await maybe_await(self.on_exception, request, exc)
            raise
        await maybe_await(self.on_response, request, response)
        return response


class HeadersPolicy(SansIOHTTPPolicy):
    """Set fixed headers on every request, overwriting earlier values."""

    def __init__(self, headers: Optional[dict[str, str]] = None):
        self.headers = dict(headers or {})

    def add_header(self, key: str, value: str) -> None:
        self.headers[key] = value

    def on_request(self, request: HttpRequest) -> None:
        for key, value in self.headers.items():
            request.headers[key] = value


class UserAgentPolicy(SansIOHTTPPolicy):
    """Stamp ``User-Agent`` with the sdk, Python and platform identity."""

    def __init__(
        self,
        sdk_name: str = "core",
        sdk_version: str = "0.1.0",
        *,
        application_id: Optional[str] = None,
        telemetry_disabled: bool = False,
    ):
        token = f"restpipe-{sdk_name}/{sdk_version}"
        if not telemetry_disabled:
            token = (
                f"{token} Python/{platform.python_version()} "
                f"({platform.platform(terse=True)})"
            )
        if application_id:
            token = f"{application_id} {token}"
        self.user_agent = token

    def on_request(self, request: HttpRequest) -> None:
        request.headers["User-Agent"] = self.user_agent


class RequestIdPolicy(SansIOHTTPPolicy):
    """Tag each logical request with a client request id (kept across retries)."""

    def __init__(self, header_name: str = "x-ms-client-request-id"):
        self.header_name = header_name

    def on_request(self, request: HttpRequest) -> None:
        request_id = request.headers.get(self.header_name)
        if request_id is None:
            request_id = str(uuid.uuid4())
            request.headers[self.header_name] = request_id
        request.context["request_id"] = request_id


class AddDatePolicy(SansIOHTTPPolicy):
    """Set an RFC 1123 GMT date header."""

    def __init__(self, header_name: str = "Date"):
        self.header_name = header_name

    def on_request(self, request: HttpRequest) -> None:
        request.headers[self.header_name] = email.utils.formatdate(usegmt=True)


class AccessToken(NamedTuple):
    token: str
    expires_on: int


class TokenCredential(Protocol):
    """Anything that can hand out a bearer token (sync or async ``get_token``)."""

    def get_token(self, *scopes: str) -> Any: ...


class ApiKeyCredential:
    """An API key that can be rotated in place."""

    def __init__(self, key: str):
        self.update(key)

    @property
    def key(self) -> str:
        return self._key

    def update(self, key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationError("API key must be a non-empty string")
        self._key = key


class ApiKeyCredentialPolicy(SansIOHTTPPolicy):
    """Send an API key in a header."""

    def __init__(
        self,
        credential: ApiKeyCredential,
        header_name: str = "x-api-key",
        *,
        prefix: Optional[str] = None,
    ):
        if not header_name:
            raise ValidationError("header_name is required")
        self.credential = credential
        self.header_name = header_name
        self.prefix = prefix

    def on_request(self, request: HttpRequest) -> None:
        key = self.credential.key
        request.headers[self.header_name] = (
            f"{self.prefix} {key}" if self.prefix else key
        )


class BearerTokenCredentialPolicy(SansIOHTTPPolicy):
    """
    Attach ``Authorization: Bearer <token>`` from an opaque credential.

    Token issuance and refresh belong to the credential. Bearer tokens are
    only sent over https unless ``enforce_https`` is turned off.
    """

    def __init__(
        self, credential: TokenCredential, *scopes: str, enforce_https: bool = True
    ):
        if not hasattr(credential, "get_token"):
            raise ValidationError("credential must provide get_token()")
        self.credential = credential
        self.scopes = scopes
        self.enforce_https = enforce_https

    async def on_request(self, request: HttpRequest) -> None:
        if self.enforce_https and httpx.URL(request.url).scheme != "https":
            raise ValidationError(
                "Bearer token authentication is not permitted for non-TLS "
                f"protected (non-https) URLs: {request.url}"
            )
        token: Union[str, AccessToken, Any] = await maybe_await(
            self.credential.get_token, *self.scopes
        )
        value = token if isinstance(token, str) else token.token
        request.headers["Authorization"] = f"Bearer {value}"


class ResponseValidationPolicy(SansIOHTTPPolicy):
    """Check that echoed headers in the response match what was sent."""

    def __init__(self, echo_headers: tuple[str, ...] = ("x-ms-client-request-id",)):
        self.echo_headers = echo_headers

    def on_response(self, request: HttpRequest, response: HttpResponse) -> None:
        for name in self.echo_headers:
            sent = request.headers.get(name)
            echoed = response.headers.get(name)
            if sent is not None and echoed is not None and sent != echoed:
                raise ResponseValidationError(
                    f"Unexpected header value for {name}: sent {sent!r}, "
                    f"received {echoed!r}"
                )


class HttpLoggingPolicy(HTTPPolicy):
    """
    Log each attempt and its response.

    Header values outside ``allowed_header_names`` and query values outside
    ``allowed_query_params`` are written as ``REDACTED``.
    """

    def __init__(
        self,
        options: Optional[HttpLogOptions] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self.options = options or HttpLogOptions()
        self.logger = logger or logging.getLogger(__name__)

    def redact_url(self, url: str) -> str:
        parsed = httpx.URL(url)
        if not parsed.query:
            return url
        allowed = self.options.allowed_query_params
        params = [
            (key, value if key.lower() in allowed else REDACTED)
            for key, value in parsed.params.multi_items()
        ]
        return str(httpx.URL(url, params=params))

    def redact_headers(self, headers: httpx.Headers) -> dict[str, str]:
        return {
            key: value if key.lower() in self.options.allowed_header_names else REDACTED
            for key, value in headers.items()
        }

    def _body_preview(self, content: Optional[bytes], streamed: bool = False) -> str:
        if streamed:
            return "(streamed body)"
        if not content:
            return "(empty body)"
        limit = self.options.body_log_limit
        text = content[:limit].decode("utf-8", errors="replace")
        if len(content) > limit:
            text += f"... ({len(content)} bytes)"
        return text

    async def send(self, request: HttpRequest, next_: NextPolicy) -> HttpResponse:
        level = self.options.detail_level
        if level == HttpLogDetailLevel.NONE or not self.logger.isEnabledFor(
            logging.INFO
        ):
            return await next_(request)

        retry_count = request.context.get("retry_count", 0)
        self.logger.info(
            f"--> {request.method} {self.redact_url(request.url)} "
            f"(try={retry_count + 1})"
        )
        if level in (HttpLogDetailLevel.HEADERS, HttpLogDetailLevel.BODY_AND_HEADERS):
            self.logger.info(f"Request headers: {self.redact_headers(request.headers)}")
        if level == HttpLogDetailLevel.BODY_AND_HEADERS:
            preview = self._body_preview(
                request.content, streamed=not request.is_replayable
            )
            self.logger.info(f"Request body: {preview}")

        start = time.perf_counter()
        try:
            response = await next_(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.logger.info(
                f"<-- {request.method} {self.redact_url(request.url)} failed after "
                f"{elapsed_ms:.0f}ms: {type(e).__name__}: {e}"
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        self.logger.info(
            f"<-- {response.status_code} {self.redact_url(request.url)} "
            f"({elapsed_ms:.0f}ms)"
        )
        if level in (HttpLogDetailLevel.HEADERS, HttpLogDetailLevel.BODY_AND_HEADERS):
            self.logger.info(
                f"Response headers: {self.redact_headers(response.headers)}"
            )
        if level == HttpLogDetailLevel.BODY_AND_HEADERS:
            self.logger.info(f"Response body: {self._body_preview(response.content)}")
        return response
