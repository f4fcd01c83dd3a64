"""
Network module for restpipe.

This module provides the HTTP policy pipeline, retry with backoff, pollers for
long-running operations and pagers for continuation-token collections.
"""

from .client import ServiceClient
from .events import OperationEvent, OperationStatus, is_terminal
from .paging import AsyncPagedIterable, Page, PagedIterable, page_from_response
from .pipeline import Pipeline, build_pipeline
from .policies import (
    AccessToken,
    AddDatePolicy,
    ApiKeyCredential,
    ApiKeyCredentialPolicy,
    BearerTokenCredentialPolicy,
    HeadersPolicy,
    HTTPPolicy,
    HttpLoggingPolicy,
    RequestIdPolicy,
    ResponseValidationPolicy,
    SansIOHTTPPolicy,
    UserAgentPolicy,
)
from .polling import (
    HttpOperationPoller,
    Poller,
    PollResponse,
    SyncPoller,
    begin_http_operation,
)
from .retry import RetryPolicy, parse_retry_after
from .transport import (
    AiohttpTransport,
    AsyncTransport,
    HttpRequest,
    HttpResponse,
    HttpxTransport,
)

__all__ = [
    # Client
    "ServiceClient",

    # Transport
    "HttpRequest",
    "HttpResponse",
    "AsyncTransport",
    "HttpxTransport",
    "AiohttpTransport",

    # Pipeline
    "Pipeline",
    "build_pipeline",
    "HTTPPolicy",
    "SansIOHTTPPolicy",
    "HeadersPolicy",
    "UserAgentPolicy",
    "RequestIdPolicy",
    "AddDatePolicy",
    "AccessToken",
    "ApiKeyCredential",
    "ApiKeyCredentialPolicy",
    "BearerTokenCredentialPolicy",
    "ResponseValidationPolicy",
    "HttpLoggingPolicy",
    "RetryPolicy",
    "parse_retry_after",

    # Long-running operations
    "OperationStatus",
    "OperationEvent",
    "is_terminal",
    "PollResponse",
    "Poller",
    "SyncPoller",
    "HttpOperationPoller",
    "begin_http_operation",

    # Paging
    "Page",
    "AsyncPagedIterable",
    "PagedIterable",
    "page_from_response",
]
