# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Configuration records for pipelines, retries, logging and polling.

All records are frozen pydantic models validated at construction. The
``default_*`` factories return fresh values on every call.
"""

import logging
import os
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restpipe.utils import get_env_bool, get_env_dict, get_env_float, get_env_int

__all__ = [
    "DEFAULT_RETRY_STATUS_CODES",
    "DEFAULT_MAX_INCONCLUSIVE_POLLS",
    "DEFAULT_ALLOWED_HEADER_NAMES",
    "DEFAULT_ALLOWED_QUERY_PARAMS",
    "HttpLogDetailLevel",
    "RetryOptions",
    "HttpLogOptions",
    "PollerOptions",
    "PipelineOptions",
    "default_retry_options",
    "default_log_options",
    "default_pipeline_options",
]

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUS_CODES = frozenset({408, 500, 502, 503, 504})

DEFAULT_MAX_INCONCLUSIVE_POLLS = 30

DEFAULT_ALLOWED_HEADER_NAMES = frozenset(
    {
        "x-ms-client-request-id",
        "x-ms-return-client-request-id",
        "x-ms-request-id",
        "x-ms-version",
        "traceparent",
        "accept",
        "cache-control",
        "connection",
        "content-length",
        "content-type",
        "date",
        "etag",
        "expires",
        "if-match",
        "if-modified-since",
        "if-none-match",
        "if-unmodified-since",
        "last-modified",
        "pragma",
        "request-id",
        "retry-after",
        "server",
        "transfer-encoding",
        "user-agent",
        "location",
        "operation-location",
    }
)

DEFAULT_ALLOWED_QUERY_PARAMS = frozenset({"api-version"})


class HttpLogDetailLevel(str, Enum):
    """How much of each request/response the logging policy writes."""

    NONE = "NONE"
    BASIC = "BASIC"  # method, url, status, duration
    HEADERS = "HEADERS"
    BODY_AND_HEADERS = "BODY_AND_HEADERS"


class RetryOptions(BaseModel):
    """Options for ``RetryPolicy``."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=0.8, ge=0.0)
    max_delay: float = Field(default=60.0, ge=0.0)
    retry_status_codes: frozenset[int] = DEFAULT_RETRY_STATUS_CODES
    jitter_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    per_try_timeout: Optional[float] = Field(default=None, gt=0.0)
    total_timeout: Optional[float] = Field(default=None, gt=0.0)

    @field_validator("retry_status_codes")
    @classmethod
    def _check_status_codes(cls, value: frozenset[int]) -> frozenset[int]:
        for code in value:
            if not 100 <= code <= 599:
                raise ValueError(f"Invalid HTTP status code in retry set: {code}")
        return value

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryOptions":
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self


class HttpLogOptions(BaseModel):
    """Options for ``HttpLoggingPolicy``."""

    model_config = ConfigDict(frozen=True)

    detail_level: HttpLogDetailLevel = HttpLogDetailLevel.BASIC
    allowed_header_names: frozenset[str] = DEFAULT_ALLOWED_HEADER_NAMES
    allowed_query_params: frozenset[str] = DEFAULT_ALLOWED_QUERY_PARAMS
    body_log_limit: int = Field(default=16 * 1024, ge=0)

    @field_validator("allowed_header_names", "allowed_query_params")
    @classmethod
    def _lowercase(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(name.lower() for name in value)


class PollerOptions(BaseModel):
    """Defaults for pollers created by ``ServiceClient``."""

    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(default=1.0, ge=0.0)
    timeout: Optional[float] = Field(default=None, gt=0.0)
    # consecutive inconclusive ticks (404, transient errors) before FAILED
    max_inconclusive_polls: Optional[int] = Field(
        default=DEFAULT_MAX_INCONCLUSIVE_POLLS, ge=1
    )


class PipelineOptions(BaseModel):
    """Everything ``build_pipeline`` needs besides the transport."""

    model_config = ConfigDict(frozen=True)

    sdk_name: str = "core"
    sdk_version: str = "0.1.0"
    application_id: Optional[str] = Field(default=None, max_length=24)
    telemetry_disabled: bool = False
    request_id_header: str = "x-ms-client-request-id"
    default_headers: dict[str, str] = Field(default_factory=dict)
    retry: RetryOptions = Field(default_factory=RetryOptions)
    logging: HttpLogOptions = Field(default_factory=HttpLogOptions)
    polling: PollerOptions = Field(default_factory=PollerOptions)

    @field_validator("application_id")
    @classmethod
    def _check_application_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and any(ch.isspace() for ch in value):
            raise ValueError("application_id must not contain whitespace")
        return value

    @classmethod
    def from_env(
        cls, prefix: str = "RESTPIPE_", **overrides: Any
    ) -> "PipelineOptions":
        """
        Build options from environment variables.

        Recognized variables (with the default prefix): ``RESTPIPE_MAX_RETRIES``,
        ``RESTPIPE_BASE_DELAY``, ``RESTPIPE_MAX_DELAY``,
        ``RESTPIPE_PER_TRY_TIMEOUT``, ``RESTPIPE_TELEMETRY_DISABLED``,
        ``RESTPIPE_LOG_LEVEL``, ``RESTPIPE_APPLICATION_ID``,
        ``RESTPIPE_POLL_INTERVAL`` and ``RESTPIPE_DEFAULT_HEADERS`` (a JSON
        object). Keyword overrides win over the environment.
        """
        retry_kwargs: dict[str, Any] = {}
        for field_name, getter in (
            ("max_retries", get_env_int),
            ("base_delay", get_env_float),
            ("max_delay", get_env_float),
            ("per_try_timeout", get_env_float),
        ):
            value = getter(f"{prefix}{field_name.upper()}")
            if value is not None:
                retry_kwargs[field_name] = value

        kwargs: dict[str, Any] = {
            "telemetry_disabled": get_env_bool(f"{prefix}TELEMETRY_DISABLED"),
        }
        if retry_kwargs:
            kwargs["retry"] = RetryOptions(**retry_kwargs)

        level_name = _env_str(f"{prefix}LOG_LEVEL")
        if level_name:
            kwargs["logging"] = HttpLogOptions(detail_level=level_name.upper())

        application_id = _env_str(f"{prefix}APPLICATION_ID")
        if application_id:
            kwargs["application_id"] = application_id

        poll_interval = get_env_float(f"{prefix}POLL_INTERVAL")
        if poll_interval is not None:
            kwargs["polling"] = PollerOptions(poll_interval=poll_interval)

        headers = get_env_dict(f"{prefix}DEFAULT_HEADERS")
        if headers:
            kwargs["default_headers"] = {str(k): str(v) for k, v in headers.items()}

        kwargs.update(overrides)
        logger.debug(f"Resolved pipeline options from environment: {sorted(kwargs)}")
        return cls(**kwargs)


def _env_str(var_name: str) -> Optional[str]:
    value = os.environ.get(var_name, "").strip()
    return value or None


def default_retry_options() -> RetryOptions:
    return RetryOptions()


def default_log_options() -> HttpLogOptions:
    return HttpLogOptions()


def default_pipeline_options() -> PipelineOptions:
    return PipelineOptions()
