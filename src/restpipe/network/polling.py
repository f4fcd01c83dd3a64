# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Long-running operation pollers.

A ``Poller`` runs an activation closure exactly once, then a poll closure
tick by tick until the operation reaches a terminal status. Ticks never
overlap. ``HttpOperationPoller`` wires the closures to the usual
``202 Accepted`` + status URL REST contract.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from contextlib import AsyncExitStack, nullcontext
from dataclasses import dataclass
from functools import partial
from typing import Any, Generic, Optional, TypeVar

import anyio
import httpx
import orjson
from anyio.from_thread import start_blocking_portal

from restpipe.async_utils import CancellationToken, cancel_on
from restpipe.config import (
    DEFAULT_MAX_INCONCLUSIVE_POLLS,
    DEFAULT_RETRY_STATUS_CODES,
)
from restpipe.errors import (
    HttpStatusError,
    NotCompleteError,
    OperationFailedError,
    OperationTimeoutError,
    RateLimitError,
    ResourceNotFoundError,
    TransportError,
    ValidationError,
    map_http_error,
)
from restpipe.network.events import (
    OperationEvent,
    OperationStatus,
    StatusLike,
    is_terminal,
)
from restpipe.network.pipeline import Pipeline
from restpipe.network.retry import parse_retry_after
from restpipe.network.transport import HttpRequest, HttpResponse
from restpipe.utils import force_async

__all__ = [
    "PollResponse",
    "Poller",
    "SyncPoller",
    "HttpOperationPoller",
    "begin_http_operation",
    "map_operation_status",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class PollResponse(Generic[T]):
    """One observation of an operation's status."""

    status: StatusLike
    value: Optional[T] = None
    retry_after: Optional[float] = None  # overrides the next poll interval
    error: Any = None  # service error payload

    @property
    def is_complete(self) -> bool:
        return is_terminal(self.status)


def _fail_after(seconds: Optional[float]) -> Any:
    return anyio.fail_after(seconds) if seconds is not None else nullcontext()


def _is_inconclusive(exc: BaseException) -> bool:
    # Errors that may clear up on a later tick keep the operation IN_PROGRESS.
    if isinstance(exc, OperationTimeoutError):
        # an inner retry budget ran out; the operation budget decides
        return True
    if isinstance(exc, TransportError):
        return exc.retryable
    if isinstance(exc, (ResourceNotFoundError, RateLimitError)):
        return True
    if isinstance(exc, HttpStatusError):
        return exc.status_code in DEFAULT_RETRY_STATUS_CODES
    return False


class Poller(Generic[T, U]):
    """
    Drive a long-running operation to a terminal status.

    Closures may be sync or async; sync closures run in a worker thread.

    Args:
        poll_operation: Called with the latest ``PollResponse``; returns the
            next ``PollResponse``.
        activation_operation: Starts the remote operation. Returns a
            ``PollResponse`` or a plain value (taken as ``NOT_STARTED``).
        cancel_operation: Called with the activation response. Returning
            ``True`` or a ``USER_CANCELLED`` response confirms cancellation.
        final_result_operation: Maps the final ``PollResponse`` to the
            result. Defaults to the response value.
        poll_interval: Seconds between ticks, unless a response carries
            ``retry_after``.
        timeout: Overall budget in seconds, counted from activation.
        max_inconclusive_polls: Consecutive inconclusive ticks (404, transient
            errors) tolerated before the operation is marked FAILED. ``None``
            leaves only ``timeout`` as the bound.
        operation_id: Identifier used in logs and the lifecycle event.
    """

    def __init__(
        self,
        poll_operation: Callable[[PollResponse[T]], Any],
        *,
        activation_operation: Callable[[], Any],
        cancel_operation: Optional[Callable[[PollResponse[T]], Any]] = None,
        final_result_operation: Optional[Callable[[PollResponse[T]], Any]] = None,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
        max_inconclusive_polls: Optional[int] = DEFAULT_MAX_INCONCLUSIVE_POLLS,
        operation_id: Optional[str] = None,
    ):
        if not callable(poll_operation) or not callable(activation_operation):
            raise ValidationError(
                "poll_operation and activation_operation must be callable"
            )
        if poll_interval < 0:
            raise ValidationError("poll_interval must be >= 0")
        if timeout is not None and timeout <= 0:
            raise ValidationError("timeout must be > 0")
        if max_inconclusive_polls is not None and max_inconclusive_polls < 1:
            raise ValidationError("max_inconclusive_polls must be >= 1")

        self._poll_op = force_async(poll_operation)
        self._activation_op = force_async(activation_operation)
        self._cancel_op = force_async(cancel_operation) if cancel_operation else None
        self._final_op = (
            force_async(final_result_operation) if final_result_operation else None
        )
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_inconclusive_polls = max_inconclusive_polls

        self._event = OperationEvent(operation_id=operation_id or uuid.uuid4().hex)
        self._status: StatusLike = OperationStatus.NOT_STARTED
        self._activation_response: Optional[PollResponse[T]] = None
        self._last_response: Optional[PollResponse[T]] = None
        self._error: Optional[BaseException] = None
        self._last_error: Optional[BaseException] = None
        self._inconclusive_polls = 0
        self._started = False
        self._detached = False
        self._timed_out = False
        self._deadline: Optional[float] = None
        self._result: Any = None
        self._result_ready = False
        self._background_running = False
        self._exit_stack: Optional[AsyncExitStack] = None

        # anyio primitives need a running event loop; created on first use
        self._start_lock: Optional[anyio.Lock] = None
        self._tick_lock: Optional[anyio.Lock] = None
        self._result_lock: Optional[anyio.Lock] = None
        self._changed: Optional[anyio.Event] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.operation_id} status={self._status!s}>"

    # read access

    @property
    def operation_id(self) -> str:
        return self._event.operation_id

    @property
    def status(self) -> StatusLike:
        return self._status

    @property
    def is_complete(self) -> bool:
        """True once the operation reached a terminal status."""
        return is_terminal(self._status)

    @property
    def is_detached(self) -> bool:
        return self._detached

    @property
    def is_done(self) -> bool:
        """True when no further ticks will run (terminal, detached or timed out)."""
        return self.is_complete or self._detached or self._timed_out

    @property
    def last_response(self) -> Optional[PollResponse[T]]:
        return self._last_response

    @property
    def activation_response(self) -> Optional[PollResponse[T]]:
        return self._activation_response

    @property
    def error(self) -> Optional[BaseException]:
        """The failure that made the operation FAILED, if any."""
        return self._error

    @property
    def last_error(self) -> Optional[BaseException]:
        """The latest inconclusive poll error (the operation stayed IN_PROGRESS)."""
        return self._last_error

    @property
    def poll_count(self) -> int:
        return self._event.poll_count

    @property
    def event(self) -> OperationEvent:
        return self._event

    # internal state changes

    def _lock(self, name: str) -> anyio.Lock:
        lock = getattr(self, name)
        if lock is None:
            lock = anyio.Lock()
            setattr(self, name, lock)
        return lock

    def _changed_event(self) -> anyio.Event:
        if self._changed is None:
            self._changed = anyio.Event()
        return self._changed

    def _notify(self) -> None:
        if self._changed is not None:
            self._changed.set()
            self._changed = None

    def _apply(self, response: PollResponse[T], *, tick: bool) -> None:
        previous = self._status
        self._last_response = response
        self._status = response.status
        if tick:
            self._event.record_poll(response.status)
        else:
            self._event.update_status(response.status)

        if response.status == OperationStatus.FAILED and self._error is None:
            self._error = OperationFailedError(
                f"Operation {self.operation_id} failed",
                status=response.status,
                error_payload=response.error,
            )
            self._event.set_error(self._error, payload=response.error)
        if previous != response.status:
            logger.debug(
                f"Operation {self.operation_id}: {previous!s} -> {response.status!s}"
            )
        self._notify()

    def _fail(self, exc: BaseException) -> None:
        payload = getattr(exc, "error_payload", None)
        failure = OperationFailedError(
            f"Operation {self.operation_id} failed: {exc}",
            status=OperationStatus.FAILED,
            error_payload=payload,
        )
        failure.__cause__ = exc
        self._error = failure
        self._event.set_error(exc, payload=payload, terminal=False)
        logger.warning(f"Operation {self.operation_id} failed: {exc}")
        value = self._last_response.value if self._last_response else None
        self._apply(
            PollResponse(OperationStatus.FAILED, value, error=payload), tick=False
        )

    def _timeout_error(self) -> OperationTimeoutError:
        return OperationTimeoutError(
            f"Operation {self.operation_id} did not complete within "
            f"{self.timeout}s",
            last_response=self._last_response,
        )

    def _expire(self) -> OperationTimeoutError:
        if not self._timed_out:
            self._timed_out = True
            self._event.add_log("Operation timed out; polling stopped")
            logger.warning(
                f"Operation {self.operation_id} timed out after {self.timeout}s"
            )
            self._notify()
        return self._timeout_error()

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - anyio.current_time()

    def _next_delay(self) -> float:
        delay = self.poll_interval
        last = self._last_response
        if last is not None and last.retry_after is not None:
            delay = last.retry_after
        remaining = self._remaining()
        if remaining is not None:
            delay = min(delay, max(0.0, remaining))
        return delay

    # operations

    async def start(self) -> PollResponse[T]:
        """
        Run the activation operation, exactly once.

        Later calls return the stored activation response. If activation
        raises, the operation becomes FAILED without a single poll tick.
        """
        if self._started:
            return self._activation_response  # type: ignore[return-value]
        async with self._lock("_start_lock"):
            if self._started:
                return self._activation_response  # type: ignore[return-value]
            try:
                raw = await self._activation_op()
            except Exception as e:
                self._started = True
                self._fail(e)
                self._activation_response = self._last_response
                return self._activation_response  # type: ignore[return-value]

            response = (
                raw
                if isinstance(raw, PollResponse)
                else PollResponse(OperationStatus.NOT_STARTED, raw)
            )
            self._started = True
            self._activation_response = response
            if self.timeout is not None:
                self._deadline = anyio.current_time() + self.timeout
            self._event.mark_activated()
            self._apply(response, tick=False)
            return response

    async def poll(self) -> PollResponse[T]:
        """
        Run one poll tick and return the resulting response.

        Ticks are serialized. Once the poller is done the latest response is
        returned without calling the poll operation.

        Raises:
            OperationTimeoutError: The overall budget ran out.
        """
        await self.start()
        async with self._lock("_tick_lock"):
            if self._timed_out:
                raise self._timeout_error()
            if self.is_done:
                return self._last_response  # type: ignore[return-value]

            remaining = self._remaining()
            if remaining is not None and remaining <= 0:
                raise self._expire()

            try:
                with _fail_after(remaining):
                    raw = await self._poll_op(self._last_response)
            except TimeoutError:
                raise self._expire() from None
            except Exception as e:
                if self._detached:
                    return self._discard_tick()
                if not _is_inconclusive(e):
                    self._event.record_poll(self._status)
                    self._fail(e)
                    return self._last_response  # type: ignore[return-value]
                return self._inconclusive_tick(e)

            if self._detached:
                return self._discard_tick()
            if not isinstance(raw, PollResponse):
                self._event.record_poll(self._status)
                self._fail(
                    ValidationError(
                        f"poll_operation returned {type(raw).__name__}, "
                        "expected PollResponse"
                    )
                )
                return self._last_response  # type: ignore[return-value]

            self._inconclusive_polls = 0
            self._apply(raw, tick=True)
            return raw

    def _discard_tick(self) -> PollResponse[T]:
        # cancel() detached while this tick was in flight
        self._event.add_log("Tick result discarded; polling detached")
        return self._last_response  # type: ignore[return-value]

    def _inconclusive_tick(self, exc: Exception) -> PollResponse[T]:
        self._last_error = exc
        self._inconclusive_polls += 1
        limit = self.max_inconclusive_polls
        if limit is not None and self._inconclusive_polls >= limit:
            logger.warning(
                f"Operation {self.operation_id}: {self._inconclusive_polls} "
                "consecutive inconclusive polls; giving up"
            )
            self._event.record_poll(self._status)
            self._fail(exc)
            return self._last_response  # type: ignore[return-value]

        self._event.add_log(f"Inconclusive poll: {type(exc).__name__} - {exc}")
        logger.debug(
            f"Operation {self.operation_id}: inconclusive poll "
            f"({type(exc).__name__}: {exc}); still in progress"
        )
        value = self._last_response.value if self._last_response else None
        self._apply(PollResponse(OperationStatus.IN_PROGRESS, value), tick=True)
        return self._last_response  # type: ignore[return-value]

    async def _drive(self, reached: Callable[[], bool]) -> None:
        while True:
            if reached() or self.is_complete or self._detached:
                return
            if self._timed_out:
                raise self._timeout_error()
            if self._background_running:
                await self._changed_event().wait()
                continue
            await anyio.sleep(self._next_delay())
            await self.poll()

    async def wait_for_status(
        self,
        status: StatusLike,
        *,
        timeout: Optional[float] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> PollResponse[T]:
        """
        Block until ``status`` is observed or the operation is done.

        Args:
            status: Status to wait for.
            timeout: Caller budget in seconds. Expiry raises
                ``OperationTimeoutError`` and leaves the poller usable.
            cancellation_token: Firing the token stops waiting and returns
                the latest response.

        Returns:
            The latest PollResponse.
        """
        target = OperationStatus.from_string(status)
        await self.start()
        with cancel_on(cancellation_token):
            try:
                with _fail_after(timeout):
                    await self._drive(lambda: self._status == target)
            except TimeoutError:
                raise OperationTimeoutError(
                    f"Gave up waiting for operation {self.operation_id} after "
                    f"{timeout}s",
                    last_response=self._last_response,
                ) from None
        return self._last_response  # type: ignore[return-value]

    async def wait(
        self,
        *,
        timeout: Optional[float] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> PollResponse[T]:
        """Block until the operation reaches a terminal status (or detaches)."""
        await self.start()
        with cancel_on(cancellation_token):
            try:
                with _fail_after(timeout):
                    await self._drive(lambda: False)
            except TimeoutError:
                raise OperationTimeoutError(
                    f"Gave up waiting for operation {self.operation_id} after "
                    f"{timeout}s",
                    last_response=self._last_response,
                ) from None
        return self._last_response  # type: ignore[return-value]

    def _detach(self, reason: str) -> None:
        if self._detached:
            return
        self._detached = True
        self._event.add_log(f"Polling detached: {reason}")
        logger.debug(f"Operation {self.operation_id}: polling detached ({reason})")
        self._notify()

    async def cancel(self) -> PollResponse[T]:
        """
        Request cancellation.

        The cancel operation is called only while the status is IN_PROGRESS,
        and the operation becomes USER_CANCELLED only if the service confirms
        it. In every other case local polling stops, a tick already in flight
        is discarded, and the remote operation keeps running. Errors from the
        cancel operation propagate.
        """
        await self.start()
        if self.is_done:
            return self._last_response  # type: ignore[return-value]
        if self._cancel_op is None:
            self._detach("cancel requested; no cancel operation configured")
            return self._last_response  # type: ignore[return-value]

        async with self._lock("_tick_lock"):
            if self.is_done:
                return self._last_response  # type: ignore[return-value]
            if self._status != OperationStatus.IN_PROGRESS:
                self._detach(
                    f"cancel requested while {self._status!s}; "
                    "cancel operation not called"
                )
                return self._last_response  # type: ignore[return-value]
            outcome = await self._cancel_op(self._activation_response)
            confirmed = outcome is True or (
                isinstance(outcome, PollResponse)
                and outcome.status == OperationStatus.USER_CANCELLED
            )
            if confirmed:
                response = (
                    outcome
                    if isinstance(outcome, PollResponse)
                    else PollResponse(
                        OperationStatus.USER_CANCELLED,
                        self._last_response.value if self._last_response else None,
                    )
                )
                self._apply(response, tick=False)
            else:
                self._detach("cancellation not confirmed by the service")
        return self._last_response  # type: ignore[return-value]

    async def result(self) -> U:
        """
        The final result of a successfully completed operation.

        The result extractor runs once; later calls return the cached value.

        Raises:
            OperationFailedError: The operation failed.
            NotCompleteError: The operation has not completed successfully.
        """
        if self._status == OperationStatus.SUCCESSFULLY_COMPLETED:
            if self._result_ready:
                return self._result
            async with self._lock("_result_lock"):
                if not self._result_ready:
                    if self._final_op is None:
                        self._result = self._last_response.value  # type: ignore
                    else:
                        self._result = await self._final_op(self._last_response)
                    self._result_ready = True
            return self._result
        if self._status == OperationStatus.FAILED and self._error is not None:
            raise self._error
        raise NotCompleteError(
            f"Operation {self.operation_id} has not completed successfully "
            f"(status: {self._status!s}"
            f"{', detached' if self._detached else ''}"
            f"{', timed out' if self._timed_out else ''})"
        )

    async def wait_for_result(
        self,
        *,
        timeout: Optional[float] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> U:
        await self.wait(timeout=timeout, cancellation_token=cancellation_token)
        return await self.result()

    # background mode

    async def _run_background(self) -> None:
        self._background_running = True
        try:
            while not self.is_done:
                await anyio.sleep(self._next_delay())
                await self.poll()
        except OperationTimeoutError:
            # recorded on the poller; waiters raise it themselves
            pass
        finally:
            self._background_running = False
            self._notify()

    async def __aenter__(self) -> "Poller[T, U]":
        await self.start()
        stack = AsyncExitStack()
        task_group = await stack.enter_async_context(anyio.create_task_group())
        stack.callback(task_group.cancel_scope.cancel)
        task_group.start_soon(self._run_background)
        self._exit_stack = stack
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> Optional[bool]:
        stack, self._exit_stack = self._exit_stack, None
        if stack is None:
            return None
        return await stack.__aexit__(exc_type, exc_val, exc_tb)


class SyncPoller(Generic[T, U]):
    """
    Blocking facade over a ``Poller``.

    Calls run on an event loop in a portal thread, so several threads can
    use the same instance; ``cancel_wait`` interrupts a blocked ``wait``.
    """

    def __init__(self, poller: Poller[T, U]):
        self._poller = poller
        self._portal_cm: Any = None
        self._portal: Any = None
        self._portal_lock = threading.Lock()
        self._wait_tokens: set[CancellationToken] = set()

    @property
    def poller(self) -> Poller[T, U]:
        return self._poller

    @property
    def status(self) -> StatusLike:
        return self._poller.status

    @property
    def is_complete(self) -> bool:
        return self._poller.is_complete

    @property
    def last_response(self) -> Optional[PollResponse[T]]:
        return self._poller.last_response

    @property
    def poll_count(self) -> int:
        return self._poller.poll_count

    def _get_portal(self) -> Any:
        with self._portal_lock:
            if self._portal is None:
                self._portal_cm = start_blocking_portal()
                self._portal = self._portal_cm.__enter__()
            return self._portal

    def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        return self._get_portal().call(func, *args)

    def start(self) -> PollResponse[T]:
        return self._call(self._poller.start)

    def poll(self) -> PollResponse[T]:
        return self._call(self._poller.poll)

    def _wait(self, func: Callable[..., Any]) -> Any:
        portal = self._get_portal()
        token = CancellationToken()
        self._wait_tokens.add(token)
        try:
            return portal.call(partial(func, cancellation_token=token))
        finally:
            self._wait_tokens.discard(token)

    def wait(self, timeout: Optional[float] = None) -> PollResponse[T]:
        return self._wait(partial(self._poller.wait, timeout=timeout))

    def wait_for_status(
        self, status: StatusLike, timeout: Optional[float] = None
    ) -> PollResponse[T]:
        return self._wait(
            partial(self._poller.wait_for_status, status, timeout=timeout)
        )

    def cancel_wait(self, reason: Optional[str] = None) -> None:
        """Release every thread blocked in ``wait``; polling is not affected."""
        if self._portal is None:
            return
        for token in list(self._wait_tokens):
            self._call(token.cancel, reason)

    def cancel(self) -> PollResponse[T]:
        return self._call(self._poller.cancel)

    def result(self) -> U:
        return self._call(self._poller.result)

    def wait_for_result(self, timeout: Optional[float] = None) -> U:
        self.wait(timeout=timeout)
        return self.result()

    def close(self) -> None:
        with self._portal_lock:
            if self._portal_cm is not None:
                self._portal_cm.__exit__(None, None, None)
            self._portal_cm = None
            self._portal = None

    def __enter__(self) -> "SyncPoller[T, U]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


# REST long-running operations

_POLLING_HEADERS = ("operation-location", "azure-asyncoperation", "location")

_SERVICE_STATUSES: dict[str, OperationStatus] = {
    "succeeded": OperationStatus.SUCCESSFULLY_COMPLETED,
    "success": OperationStatus.SUCCESSFULLY_COMPLETED,
    "completed": OperationStatus.SUCCESSFULLY_COMPLETED,
    "failed": OperationStatus.FAILED,
    "canceled": OperationStatus.USER_CANCELLED,
    "cancelled": OperationStatus.USER_CANCELLED,
    "inprogress": OperationStatus.IN_PROGRESS,
    "running": OperationStatus.IN_PROGRESS,
    "accepted": OperationStatus.IN_PROGRESS,
    "notstarted": OperationStatus.NOT_STARTED,
}


def map_operation_status(value: Any) -> StatusLike:
    """Map a service status string; unknown values pass through unchanged."""
    if not isinstance(value, str):
        return str(value)
    key = value.replace("_", "").replace("-", "").replace(" ", "").lower()
    return _SERVICE_STATUSES.get(key, value)


def _json_or_none(response: HttpResponse) -> Any:
    try:
        return response.json()
    except orjson.JSONDecodeError:
        return None


class HttpOperationPoller(Poller[HttpResponse, U]):
    """
    Poller for REST operations answered with ``202 Accepted``.

    Activation sends the initial request. A 201/202 response carrying
    ``Operation-Location``, ``Azure-AsyncOperation`` or ``Location`` starts
    polling that URL with GET; any other success completes immediately.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        request: HttpRequest,
        *,
        final_result_operation: Optional[
            Callable[[PollResponse[HttpResponse]], Any]
        ] = None,
        cancel_operation: Optional[
            Callable[[PollResponse[HttpResponse]], Any]
        ] = None,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
        max_inconclusive_polls: Optional[int] = DEFAULT_MAX_INCONCLUSIVE_POLLS,
        operation_id: Optional[str] = None,
    ):
        self.pipeline = pipeline
        self.request = request
        self.status_url: Optional[str] = None
        self.resource_url: Optional[str] = None
        super().__init__(
            self._poll_status,
            activation_operation=self._activate,
            cancel_operation=cancel_operation,
            final_result_operation=final_result_operation or self._final_resource,
            poll_interval=poll_interval,
            timeout=timeout,
            max_inconclusive_polls=max_inconclusive_polls,
            operation_id=operation_id,
        )

    def _resolve(self, location: str) -> str:
        return str(httpx.URL(self.request.url).join(location))

    def _to_poll_response(self, response: HttpResponse) -> PollResponse[HttpResponse]:
        retry_after = parse_retry_after(response.headers)
        body = _json_or_none(response)
        if isinstance(body, dict) and "status" in body:
            status = map_operation_status(body["status"])
        elif response.status_code == 202:
            status = OperationStatus.IN_PROGRESS
        else:
            status = OperationStatus.SUCCESSFULLY_COMPLETED
        error = body.get("error") if isinstance(body, dict) else None
        if status == OperationStatus.FAILED and error is None:
            error = body
        return PollResponse(status, response, retry_after=retry_after, error=error)

    async def _activate(self) -> PollResponse[HttpResponse]:
        response = await self.pipeline.send(self.request)
        response.raise_for_status()

        headers = response.headers
        location = headers.get("location")
        if location:
            self.resource_url = self._resolve(location)
        if response.status_code in (201, 202):
            for name in _POLLING_HEADERS:
                value = headers.get(name)
                if value:
                    self.status_url = self._resolve(value)
                    self._event.status_url = self.status_url
                    break

        if self.status_url is None:
            return PollResponse(OperationStatus.SUCCESSFULLY_COMPLETED, response)
        body = _json_or_none(response)
        status: StatusLike = OperationStatus.IN_PROGRESS
        if isinstance(body, dict) and "status" in body:
            status = map_operation_status(body["status"])
        return PollResponse(
            status, response, retry_after=parse_retry_after(response.headers)
        )

    async def _poll_status(
        self, last: PollResponse[HttpResponse]
    ) -> PollResponse[HttpResponse]:
        response = await self.pipeline.send(HttpRequest("GET", self.status_url))
        if response.is_error:
            raise map_http_error(response)
        return self._to_poll_response(response)

    async def _final_resource(self, last: PollResponse[HttpResponse]) -> HttpResponse:
        # Operation-Location polling ends on a status document; fetch the resource
        if (
            self.status_url is not None
            and self.resource_url is not None
            and self.resource_url != self.status_url
        ):
            response = await self.pipeline.send(HttpRequest("GET", self.resource_url))
            return response.raise_for_status()
        return last.value  # type: ignore[return-value]


def begin_http_operation(
    pipeline: Pipeline,
    request: HttpRequest,
    **kwargs: Any,
) -> HttpOperationPoller[Any]:
    """
    Create a poller for a REST long-running operation.

    Nothing is sent until the poller is first used. Keyword arguments are
    passed to ``HttpOperationPoller``.
    """
    return HttpOperationPoller(pipeline, request, **kwargs)
