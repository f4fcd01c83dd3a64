# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Retry with exponential backoff and jitter.

Each ``send`` keeps its own attempt counter; the policy itself only holds
its options, so one instance can serve any number of concurrent calls.
"""

import email.utils
import logging
import random
import time
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional

import anyio

from restpipe.config import RetryOptions
from restpipe.errors import (
    HttpStatusError,
    NetworkError,
    OperationTimeoutError,
    RateLimitError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
)
from restpipe.network.policies import HTTPPolicy, NextPolicy
from restpipe.network.transport import HttpRequest, HttpResponse

__all__ = [
    "RetryPolicy",
    "parse_retry_after",
]

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]

_MS_RETRY_HEADERS = ("retry-after-ms", "x-ms-retry-after-ms")


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """
    Read a server-requested delay in seconds.

    ``retry-after-ms`` and ``x-ms-retry-after-ms`` take precedence over
    ``Retry-After``, which may hold seconds or an HTTP-date. Unparseable or
    missing values give ``None``; negative delays are clamped to zero.
    """
    for name in _MS_RETRY_HEADERS:
        value = headers.get(name)
        if value:
            try:
                return max(0.0, float(value) / 1000.0)
            except ValueError:
                continue

    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    return max(0.0, retry_at.timestamp() - time.time())


class RetryPolicy(HTTPPolicy):
    """
    Resend a request on retryable statuses and transport failures.

    Every attempt sends a fresh copy of the logical request, so headers set
    by later policies do not leak into the next attempt. ``total_timeout``
    bounds the whole sequence, running attempts included.

    Args:
        options: Retry configuration; defaults to ``RetryOptions()``.
        sleep: Awaitable sleep used for backoff. Tests inject a recorder.
        rng: Source of jitter.
    """

    def __init__(
        self,
        options: Optional[RetryOptions] = None,
        *,
        sleep: SleepFn = anyio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.options = options or RetryOptions()
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, retry_number: int) -> float:
        """Backoff before retry ``retry_number`` (0 for the first retry)."""
        exponential = self.options.base_delay * (2**retry_number)
        jitter = self._rng.uniform(0.0, self.options.jitter_ratio * exponential)
        return min(self.options.max_delay, exponential + jitter)

    def is_retryable_response(self, response: HttpResponse) -> bool:
        return response.status_code in self.options.retry_status_codes

    def is_retryable_exception(self, exc: BaseException) -> bool:
        if isinstance(exc, ValidationError):
            return False
        if isinstance(exc, TransportError):
            return exc.retryable
        if isinstance(exc, HttpStatusError):
            return exc.status_code in self.options.retry_status_codes
        return False

    async def _attempt(
        self,
        request: HttpRequest,
        next_: NextPolicy,
        deadline: Optional[float],
        last_response: Optional[HttpResponse],
    ) -> HttpResponse:
        timeout = self.options.per_try_timeout
        overall = False
        if deadline is not None:
            remaining = max(0.0, deadline - anyio.current_time())
            if timeout is None or remaining < timeout:
                timeout, overall = remaining, True
        if timeout is None:
            return await next_(request)
        try:
            with anyio.fail_after(timeout):
                return await next_(request)
        except TimeoutError as e:
            if overall:
                raise OperationTimeoutError(
                    f"Retry budget of {self.options.total_timeout}s exhausted "
                    f"during an attempt for {request.method} {request.url}",
                    last_response=last_response,
                ) from e
            raise TransportTimeoutError(
                f"Attempt did not complete within {timeout}s", original_exception=e
            ) from e

    def _requested_delay(
        self, response: Optional[HttpResponse], exc: Optional[BaseException]
    ) -> Optional[float]:
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            return exc.retry_after
        if isinstance(exc, HttpStatusError) and exc.response is not None:
            response = exc.response
        if response is not None:
            return parse_retry_after(response.headers)
        return None

    async def send(self, request: HttpRequest, next_: NextPolicy) -> HttpResponse:
        options = self.options
        deadline = (
            anyio.current_time() + options.total_timeout
            if options.total_timeout is not None
            else None
        )
        retry_number = 0
        last_response: Optional[HttpResponse] = None

        while True:
            request.context["retry_count"] = retry_number
            attempt = request.copy()
            attempts = retry_number + 1
            response: Optional[HttpResponse] = None
            error: Optional[Exception] = None

            try:
                response = await self._attempt(
                    attempt, next_, deadline, last_response
                )
            except Exception as e:
                error = e
                _set_attempts(e, attempts)
                if (
                    not self.is_retryable_exception(e)
                    or retry_number >= options.max_retries
                    or not request.is_replayable
                ):
                    raise
            else:
                response.attempts = attempts
                last_response = response
                if (
                    not self.is_retryable_response(response)
                    or retry_number >= options.max_retries
                    or not request.is_replayable
                ):
                    return response

            delay = self._requested_delay(response, error)
            if delay is None:
                delay = self.compute_delay(retry_number)

            if deadline is not None and anyio.current_time() + delay > deadline:
                raise OperationTimeoutError(
                    f"Retry budget of {options.total_timeout}s exhausted after "
                    f"{attempts} attempt(s) for {request.method} {request.url}",
                    last_response=last_response,
                ) from error

            outcome = (
                f"status {response.status_code}"
                if response is not None
                else f"{type(error).__name__}: {error}"
            )
            logger.debug(
                f"Retrying {request.method} {request.url} after {outcome}; "
                f"attempt {attempts + 1} of {options.max_retries + 1} in {delay:.2f}s"
            )
            await self._sleep(delay)
            retry_number += 1


def _set_attempts(exc: BaseException, attempts: int) -> None:
    if isinstance(exc, NetworkError):
        exc.attempts = attempts
        return
    try:
        setattr(exc, "attempts", attempts)
    except AttributeError:
        pass
