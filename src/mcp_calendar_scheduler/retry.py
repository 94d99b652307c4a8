"""Retry executor with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import cancelled, classify_exception, to_calendar_error

logger = logging.getLogger("mcp-calendar-scheduler")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


async def _backoff(delay: float, cancel: asyncio.Event | None) -> bool:
    """Sleep for ``delay`` seconds. Returns False if ``cancel`` fired first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return True
    if cancel.is_set():
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False


async def execute(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    cancel: asyncio.Event | None = None,
) -> T:
    """Run ``fn`` with up to ``max_attempts`` attempts.

    Attempt k (k > 0) is preceded by a wait of ``base_delay * 2**(k-1)``
    seconds. Non-retryable failures stop immediately; retryable ones continue
    until the attempt budget is spent. The final failure is raised as a
    CalendarError carrying the operation name, the number of attempts and
    the original exception as ``__cause__``.
    """
    max_attempts = max(1, int(max_attempts))
    last_exc: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        if last_exc is not None:
            delay = base_delay * (2 ** (attempt - 2))
            logger.warning(
                "%s: attempt %d/%d failed (%s), retrying in %.2fs",
                operation, attempt - 1, max_attempts, last_exc, delay,
            )
            if not await _backoff(delay, cancel):
                err = cancelled()
                err.operation = operation
                err.attempts = attempt - 1
                err.__cause__ = last_exc
                raise err

        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if attempt == max_attempts or not classify_exception(exc).retryable:
                raise to_calendar_error(exc, operation=operation, attempts=attempt)
            last_exc = exc
