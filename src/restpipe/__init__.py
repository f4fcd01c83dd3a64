# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""restpipe: HTTP policy pipelines, retries, pollers and pagers."""

from .config import (
    HttpLogDetailLevel,
    HttpLogOptions,
    PipelineOptions,
    PollerOptions,
    RetryOptions,
)
from .errors import (
    HttpStatusError,
    NotCompleteError,
    OperationFailedError,
    OperationTimeoutError,
    RestPipeError,
    TransportError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "HttpLogDetailLevel",
    "HttpLogOptions",
    "PipelineOptions",
    "PollerOptions",
    "RetryOptions",
    "RestPipeError",
    "ValidationError",
    "TransportError",
    "HttpStatusError",
    "OperationFailedError",
    "OperationTimeoutError",
    "NotCompleteError",
]
