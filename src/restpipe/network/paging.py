# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Paged collections chained by continuation tokens.

Iteration is lazy and forward only; each new iteration starts again from the
first page. A ``None`` continuation token ends the sequence.
"""

import logging
from collections.abc import AsyncIterator, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from restpipe.errors import ValidationError
from restpipe.network.transport import HttpResponse
from restpipe.utils import force_async

__all__ = [
    "Page",
    "AsyncPagedIterable",
    "PagedIterable",
    "page_from_response",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """An ordered batch of items plus the token of the following page."""

    items: Sequence[T] = field(default_factory=tuple)
    continuation_token: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.continuation_token is not None


def _check_page(page: Any) -> Page[Any]:
    if not isinstance(page, Page):
        raise ValidationError(
            f"Page fetchers must return Page, got {type(page).__name__}"
        )
    return page


class AsyncPagedIterable(Generic[T]):
    """
    Async iterable over the items of a paged collection.

    Args:
        first_page: Fetches the first page.
        next_page: Fetches the page for a continuation token. Without it
            the collection has a single page.
    """

    def __init__(
        self,
        first_page: Callable[[], Any],
        next_page: Optional[Callable[[str], Any]] = None,
    ):
        self._first_page = force_async(first_page)
        self._next_page = force_async(next_page) if next_page else None

    async def _fetch(self, continuation_token: Optional[str]) -> Page[T]:
        if continuation_token is None:
            logger.debug("Fetching first page")
            return _check_page(await self._first_page())
        if self._next_page is None:
            raise ValidationError("This collection cannot resume from a token")
        logger.debug(f"Fetching page for continuation token {continuation_token!r}")
        return _check_page(await self._next_page(continuation_token))

    async def by_page(
        self, continuation_token: Optional[str] = None
    ) -> AsyncIterator[Page[T]]:
        """Yield whole pages, starting at ``continuation_token`` when given."""
        page = await self._fetch(continuation_token)
        while True:
            yield page
            if page.continuation_token is None or self._next_page is None:
                return
            page = await self._fetch(page.continuation_token)

    async def _iter_items(self) -> AsyncIterator[T]:
        async for page in self.by_page():
            for item in page.items:
                yield item

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iter_items()


class PagedIterable(Generic[T]):
    """Blocking counterpart of ``AsyncPagedIterable`` for sync fetchers."""

    def __init__(
        self,
        first_page: Callable[[], Page[T]],
        next_page: Optional[Callable[[str], Page[T]]] = None,
    ):
        self._first_page = first_page
        self._next_page = next_page

    def by_page(self, continuation_token: Optional[str] = None) -> Iterator[Page[T]]:
        if continuation_token is None:
            page = _check_page(self._first_page())
        elif self._next_page is None:
            raise ValidationError("This collection cannot resume from a token")
        else:
            page = _check_page(self._next_page(continuation_token))
        while True:
            yield page
            if page.continuation_token is None or self._next_page is None:
                return
            page = _check_page(self._next_page(page.continuation_token))

    def __iter__(self) -> Iterator[T]:
        for page in self.by_page():
            yield from page.items


def page_from_response(
    response: HttpResponse,
    items_key: str = "value",
    token_key: str = "nextLink",
) -> Page[Any]:
    """
    Read a JSON list response such as ``{"value": [...], "nextLink": "..."}``.

    Missing items give an empty page; a missing or empty token ends paging.
    """
    body = response.raise_for_status().json()
    if body is None:
        return Page(())
    if not isinstance(body, dict):
        raise ValidationError(
            f"Expected a JSON object for a page, got {type(body).__name__}"
        )
    items = body.get(items_key) or ()
    if not isinstance(items, list):
        raise ValidationError(f"Page field {items_key!r} is not a list")
    token = body.get(token_key) or None
    return Page(tuple(items), token)
