# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Error hierarchy for restpipe.

Transport and HTTP failures live under ``NetworkError``; long-running
operation failures live under ``OperationError``. Local input problems raise
``ValidationError`` and are never retried.
"""

from typing import TYPE_CHECKING, Any, Optional

import orjson
import xmltodict

if TYPE_CHECKING:
    from restpipe.network.transport import HttpResponse

__all__ = [
    "RestPipeError",
    "ValidationError",
    "NetworkError",
    "TransportError",
    "TransportTimeoutError",
    "HttpStatusError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "ResourceExistsError",
    "RateLimitError",
    "ServerError",
    "ResponseValidationError",
    "OperationError",
    "OperationFailedError",
    "OperationTimeoutError",
    "NotCompleteError",
    "map_http_error",
    "parse_error_payload",
]


class RestPipeError(Exception):
    """Base class for all restpipe errors."""


class ValidationError(RestPipeError, ValueError):
    """Malformed local input. Fails immediately and is never retried."""


class NetworkError(RestPipeError):
    """Base class for failures observed while talking to the service."""

    def __init__(self, message: str, *, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class TransportError(NetworkError):
    """Connection-level failure raised by a transport."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        original_exception: Optional[BaseException] = None,
        attempts: int = 1,
    ):
        super().__init__(message, attempts=attempts)
        self.retryable = retryable
        self.original_exception = original_exception


class TransportTimeoutError(TransportError):
    """A single attempt did not finish within its timeout."""


class HttpStatusError(NetworkError):
    """The service answered with a 4xx/5xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        response: Optional["HttpResponse"] = None,
        error_payload: Any = None,
        attempts: int = 1,
    ):
        super().__init__(message, attempts=attempts)
        self.status_code = status_code
        self.response = response
        self.error_payload = error_payload

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (Status Code: {self.status_code})"
        return base


class AuthenticationError(HttpStatusError):
    """401/403 from the service."""


class ResourceNotFoundError(HttpStatusError):
    """404 from the service."""


class ResourceExistsError(HttpStatusError):
    """409 from the service."""


class RateLimitError(HttpStatusError):
    """429 from the service."""

    def __init__(
        self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(HttpStatusError):
    """5xx from the service."""


class ResponseValidationError(NetworkError):
    """The response broke a contract the request established (e.g. echoed ids)."""


class OperationError(RestPipeError):
    """Base class for long-running operation errors."""


class OperationFailedError(OperationError):
    """The operation reached FAILED.

    Carries the last observed status and service error payload.
    """

    def __init__(
        self, message: str, *, status: Any = None, error_payload: Any = None
    ):
        super().__init__(message)
        self.status = status
        self.error_payload = error_payload


class OperationTimeoutError(OperationError):
    """An overall budget (retry sequence, operation or caller wait) ran out."""

    def __init__(self, message: str, *, last_response: Any = None):
        super().__init__(message)
        self.last_response = last_response


class NotCompleteError(OperationError):
    """A result was requested before the operation completed successfully."""


def parse_error_payload(content: bytes, content_type: str = "") -> Any:
    """Parse a service error body.

    JSON bodies go through orjson, XML bodies through xmltodict. Anything
    else (or an unparseable body) is returned as decoded text, or ``None``
    for an empty body.
    """
    if not content:
        return None
    content_type = content_type.lower()
    try:
        if "xml" in content_type or content.lstrip().startswith(b"<"):
            return xmltodict.parse(content)
        return orjson.loads(content)
    except Exception:
        return content.decode("utf-8", errors="replace")


_STATUS_ERRORS: dict[int, type[HttpStatusError]] = {
    401: AuthenticationError,
    403: AuthenticationError,
    404: ResourceNotFoundError,
    409: ResourceExistsError,
    429: RateLimitError,
}


def _error_message(payload: Any, default: str) -> str:
    # {"error": {"code": ..., "message": ...}} and <Error><Message>..</Message></Error>
    if isinstance(payload, dict):
        inner = payload.get("error") or payload.get("Error") or payload
        if isinstance(inner, dict):
            for key in ("message", "Message", "detail"):
                if isinstance(inner.get(key), str):
                    return inner[key]
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def map_http_error(response: "HttpResponse") -> HttpStatusError:
    """Build the typed error for a 4xx/5xx response."""
    status = response.status_code
    payload = parse_error_payload(
        response.content, response.headers.get("content-type", "")
    )
    if status in _STATUS_ERRORS:
        error_class = _STATUS_ERRORS[status]
    elif status >= 500:
        error_class = ServerError
    else:
        error_class = HttpStatusError

    request = response.request
    default = f"HTTP {status} for {request.method} {request.url}"
    message = _error_message(payload, default)
    kwargs: dict[str, Any] = dict(
        status_code=status,
        response=response,
        error_payload=payload,
        attempts=response.attempts,
    )
    if error_class is RateLimitError:
        from restpipe.network.retry import parse_retry_after

        kwargs["retry_after"] = parse_retry_after(response.headers)
    return error_class(message, **kwargs)
