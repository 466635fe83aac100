# -*- coding: utf-8 -*-
"""Bounded retry with exponential backoff for outbound calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Callable[[BaseException], bool] | None = None,
    label: str = "call",
) -> T:
    """Await ``fn`` up to ``attempts`` times, doubling the delay between tries.

    Only exceptions matching ``retry_on`` (and accepted by ``should_retry`` when
    given) are retried; anything else propagates immediately.
    """
    attempts = max(1, int(attempts))
    delay = max(0.0, float(base_delay))
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            retryable = should_retry(exc) if should_retry else True
            if not retryable or attempt >= attempts:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)
            delay *= 2
    raise RuntimeError(f"{label}: retry loop exhausted")  # pragma: no cover


def retry_sync(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "call",
    sleep: Callable[[float], None] | None = None,
) -> T:
    pause = sleep or time.sleep
    attempts = max(1, int(attempts))
    delay = max(0.0, float(base_delay))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            pause(delay)
            delay *= 2
    raise RuntimeError(f"{label}: retry loop exhausted")  # pragma: no cover
