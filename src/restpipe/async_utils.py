# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

"""
Cancellation helpers built on anyio cancel scopes.

A ``CancellationToken`` lets one caller stop another caller's wait without
owning its task: every scope opened with ``cancel_on(token)`` is cancelled
when the token fires.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import anyio

__all__ = [
    "CancellationToken",
    "cancel_on",
]


class CancellationToken:
    """
    A one-shot cancellation signal.

    The token must be cancelled from the event loop that waits on it. Use
    ``SyncPoller.cancel_wait`` (or a blocking portal) from other threads.
    """

    def __init__(self) -> None:
        # Plain state so tokens can be created outside a running event loop.
        self._cancelled = False
        self._scopes: set[anyio.CancelScope] = set()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Fire the token. Repeated calls keep the first reason."""
        if self._cancelled:
            return
        self._reason = reason
        self._cancelled = True
        for scope in list(self._scopes):
            scope.cancel()

    def _link(self, scope: anyio.CancelScope) -> None:
        if self._cancelled:
            scope.cancel()
        else:
            self._scopes.add(scope)

    def _unlink(self, scope: anyio.CancelScope) -> None:
        self._scopes.discard(scope)


@contextmanager
def cancel_on(token: Optional[CancellationToken]) -> Iterator[anyio.CancelScope]:
    """
    Open a cancel scope that is cancelled when ``token`` fires.

    Cancellation is absorbed by the scope; check ``scope.cancelled_caught``
    (or ``token.cancelled``) after the block to tell it apart from a normal
    exit. A ``None`` token yields a plain scope.
    """
    with anyio.CancelScope() as scope:
        if token is None:
            yield scope
            return
        token._link(scope)
        try:
            yield scope
        finally:
            token._unlink(scope)
