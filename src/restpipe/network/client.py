# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
A small service client that ties the pipeline, pollers and pagers together.
"""

import logging
from collections.abc import Sequence
from typing import Any, Callable, Optional

import httpx

from restpipe.config import PipelineOptions
from restpipe.errors import ValidationError
from restpipe.network.paging import AsyncPagedIterable, Page, page_from_response
from restpipe.network.pipeline import Pipeline, build_pipeline
from restpipe.network.policies import HTTPPolicy
from restpipe.network.polling import HttpOperationPoller, PollResponse
from restpipe.network.transport import (
    AsyncTransport,
    HttpRequest,
    HttpResponse,
    HttpxTransport,
)

__all__ = ["ServiceClient"]

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Client for one REST service.

    Builds the standard pipeline once; every request, poll tick and page
    fetch goes through it.

    Args:
        base_url: Service root, e.g. ``https://vault.example.net``.
        transport: Transport to use. Defaults to a new ``HttpxTransport``.
        credential_policy: Policy attaching authorization.
        options: Pipeline options.
        additional_policies: Extra per-attempt policies.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[AsyncTransport] = None,
        credential_policy: Optional[HTTPPolicy] = None,
        options: Optional[PipelineOptions] = None,
        additional_policies: Sequence[HTTPPolicy] = (),
    ):
        if not base_url or not httpx.URL(base_url).is_absolute_url:
            raise ValidationError(
                f"base_url must be an absolute URL, got {base_url!r}"
            )
        self.base_url = base_url.rstrip("/")
        self.options = options or PipelineOptions()
        self._pipeline = build_pipeline(
            transport or HttpxTransport(),
            options=self.options,
            credential_policy=credential_policy,
            additional_policies=additional_policies,
        )
        self._closed = False

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    @property
    def closed(self) -> bool:
        return self._closed

    def url(self, path: str) -> str:
        """Resolve ``path`` against the base URL; absolute URLs pass through."""
        if httpx.URL(path).is_absolute_url:
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def build_request(self, method: str, path: str, **kwargs: Any) -> HttpRequest:
        return HttpRequest(method, self.url(path), **kwargs)

    async def send(self, request: HttpRequest) -> HttpResponse:
        if self._closed:
            raise ValidationError("ServiceClient is closed")
        return await self._pipeline.send(request)

    async def request(self, method: str, path: str, **kwargs: Any) -> HttpResponse:
        """
        Send one request through the pipeline.

        Keyword arguments (``headers``, ``params``, ``content``, ``json``)
        are passed to ``HttpRequest``. Error statuses are returned, not
        raised; call ``raise_for_status()`` on the response.
        """
        return await self.send(self.build_request(method, path, **kwargs))

    def begin_operation(
        self,
        method: str,
        path: str,
        *,
        final_result_operation: Optional[Callable[[PollResponse[Any]], Any]] = None,
        cancel_operation: Optional[Callable[[PollResponse[Any]], Any]] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> HttpOperationPoller[Any]:
        """
        Start a long-running operation lazily.

        The request is sent when the returned poller is first used. Poll
        interval and timeout default to ``options.polling``, which also caps
        consecutive inconclusive polls.
        """
        if self._closed:
            raise ValidationError("ServiceClient is closed")
        polling = self.options.polling
        if poll_interval is None:
            poll_interval = polling.poll_interval
        if timeout is None:
            timeout = polling.timeout
        return HttpOperationPoller(
            self._pipeline,
            self.build_request(method, path, **kwargs),
            final_result_operation=final_result_operation,
            cancel_operation=cancel_operation,
            poll_interval=poll_interval,
            timeout=timeout,
            max_inconclusive_polls=polling.max_inconclusive_polls,
        )

    def list_pages(
        self,
        path: str,
        *,
        items_key: str = "value",
        token_key: str = "nextLink",
        **kwargs: Any,
    ) -> AsyncPagedIterable[Any]:
        """
        Page through a JSON list endpoint.

        The continuation token is the next link the service returns; it is
        fetched with GET as is (resolved against the base URL when relative).
        """

        async def first_page() -> Page[Any]:
            response = await self.request("GET", path, **kwargs)
            return page_from_response(response, items_key, token_key)

        async def next_page(token: str) -> Page[Any]:
            response = await self.request("GET", token)
            return page_from_response(response, items_key, token_key)

        return AsyncPagedIterable(first_page, next_page)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._pipeline.close()
        logger.debug(f"Closed client for {self.base_url}")

    async def __aenter__(self) -> "ServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
