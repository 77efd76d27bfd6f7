"""Bounded retry for flaky asynchronous steps."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)


async def retry(
    func: Callable[[], Awaitable[T]],
    attempts: int = 3,
    *,
    delay: float = 0.0,
    logger: Optional[logging.Logger] = None,
    description: str = "operation",
) -> T:
    """Await ``func`` up to ``attempts`` times and return its first result.

    Intermediate failures are logged and discarded; once every attempt has
    failed the exception of the last attempt is raised. ``delay`` seconds are
    awaited between attempts.
    """

    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    log = logger or LOGGER
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as exc:
            if attempt == attempts:
                raise
            log.warning(
                "Retry %d/%d: %s failed (%s: %s), retrying...",
                attempt,
                attempts,
                description,
                type(exc).__name__,
                exc,
            )
            if delay > 0:
                await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
