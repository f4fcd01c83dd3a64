# Copyright (c) 2023 - 2025, HaiyangLi <quantocean.li at gmail dot com>
#
# SPDX-License-Identifier: Apache-2.0

import functools
import inspect
import json
import os
from collections.abc import Awaitable, Coroutine
from typing import Any, Callable, TypeVar, Union, cast

import anyio

R = TypeVar("R")

__all__ = [
    "is_coro_func",
    "force_async",
    "maybe_await",
    "get_env_bool",
    "get_env_dict",
    "get_env_float",
    "get_env_int",
]


def is_coro_func(func: Callable[..., Any]) -> bool:
    """
    Checks if a callable is a coroutine function.

    Args:
        func: The callable to check.

    Returns:
        True if the callable is a coroutine function, False otherwise.
    """
    # functools.partial hides the wrapped function
    while isinstance(func, functools.partial):
        func = func.func
    if inspect.iscoroutinefunction(func):
        return True
    # Callable instances with an async __call__ (AsyncMock included)
    call = getattr(func, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def force_async(func: Callable[..., R]) -> Callable[..., Coroutine[Any, Any, R]]:
    """
    Wraps a synchronous function to be called in a worker thread.
    If the function is already async, it's returned unchanged.

    Args:
        func: The synchronous or asynchronous function to wrap.

    Returns:
        An awaitable version of the function.
    """
    if is_coro_func(func):
        return cast(Callable[..., Coroutine[Any, Any, R]], func)

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> R:
        return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))

    return wrapper


async def maybe_await(func: Callable[..., Union[R, Awaitable[R]]], *args: Any) -> R:
    """
    Call ``func`` and await the result when it is awaitable.

    Plain callables run inline on the event loop; use ``force_async`` for
    callables that block.
    """
    result = func(*args)
    if inspect.isawaitable(result):
        return await result
    return cast(R, result)


def get_env_bool(var_name: str, default: bool = False) -> bool:
    """
    Gets a boolean environment variable.
    True values (case-insensitive): 'true', '1', 'yes', 'y', 'on'.
    False values (case-insensitive): 'false', '0', 'no', 'n', 'off'.

    Args:
        var_name: The name of the environment variable.
        default: The default value if the variable is not set or is not a recognized boolean.

    Returns:
        The boolean value of the environment variable.
    """
    value = os.environ.get(var_name, "").strip().lower()
    if not value:
        return default

    if value in ("true", "1", "yes", "y", "on"):
        return True
    if value in ("false", "0", "no", "n", "off"):
        return False
    return default


def get_env_dict(
    var_name: str, default: dict[Any, Any] | None = None
) -> dict[Any, Any] | None:
    """
    Gets a dictionary environment variable (expected to be a JSON object).

    Args:
        var_name: The name of the environment variable.
        default: The default value if the variable is not set or is not valid JSON.

    Returns:
        The dictionary value of the environment variable or the default.
    """
    value_str = os.environ.get(var_name)
    if value_str is None:
        return default

    try:
        value = json.loads(value_str)
    except json.JSONDecodeError:
        return default
    return value if isinstance(value, dict) else default


def get_env_float(var_name: str, default: float | None = None) -> float | None:
    """Gets a float environment variable, falling back to ``default``."""
    value_str = os.environ.get(var_name, "").strip()
    if not value_str:
        return default
    try:
        return float(value_str)
    except ValueError:
        return default


def get_env_int(var_name: str, default: int | None = None) -> int | None:
    """Gets an integer environment variable, falling back to ``default``."""
    value_str = os.environ.get(var_name, "").strip()
    if not value_str:
        return default
    try:
        return int(value_str)
    except ValueError:
        return default
