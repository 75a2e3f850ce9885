"""Command helpers: retry decorator and response checking."""

from __future__ import annotations

__all__ = ["ensure_ok", "with_http_retry"]

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import aiohttp

from ..exceptions import AccessoryHttpError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def with_http_retry(
    max_retries: int = 3, backoff_factor: float = 0.5
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an accessory command on ``AccessoryHttpError`` with exponential backoff.

    Only for idempotent commands; a shutter trigger must not be wrapped.

    Args:
        max_retries: Total attempt count
        backoff_factor: Wait before the second attempt, doubled after each failure
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except AccessoryHttpError as e:
                    if attempt == max_retries - 1:
                        logger.error(f"{func.__name__} failed after {max_retries} attempt(s): {e}")
                        raise
                    wait_time = backoff_factor * (2**attempt)
                    logger.warning(f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {e}")
                    logger.debug(f"Retrying in {wait_time:.1f}s...")
                    await asyncio.sleep(wait_time)
            raise AccessoryHttpError(f"{func.__name__} was not attempted (max_retries={max_retries})")

        return wrapper

    return decorator


async def ensure_ok(resp: aiohttp.ClientResponse, action: str, error_cls: type[AccessoryHttpError] = AccessoryHttpError) -> None:
    """Raise ``error_cls`` unless the response status is 200."""
    if resp.status != 200:
        text = await resp.text()
        raise error_cls(f"Failed to {action} (HTTP {resp.status}): {text}")
