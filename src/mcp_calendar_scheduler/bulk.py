"""Bulk operations with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

from .backends.base import BatchSummary, CalendarEvent, EventDraft, OperationResult
from .client import CalendarClient
from .errors import CalendarError, RemoteErrorKind, cancelled, invalid_input, to_calendar_error

logger = logging.getLogger("mcp-calendar-scheduler")

I = TypeVar("I")
T = TypeVar("T")

DEFAULT_MAX_CONCURRENT = 5
MAX_CONCURRENT_LIMIT = 10


def clamp_concurrency(value: int | None) -> int:
    if value is None or value <= 0:
        value = DEFAULT_MAX_CONCURRENT
    return max(1, min(MAX_CONCURRENT_LIMIT, value))


def batch_summary(results: Iterable[OperationResult]) -> BatchSummary:
    total = succeeded = 0
    for result in results:
        total += 1
        if result.success:
            succeeded += 1
    return BatchSummary(total=total, succeeded=succeeded, failed=total - succeeded)


class BulkOperationError(CalendarError):
    """Raised when a bulk call without continue-on-error had failures.

    The per-item results are still attached for inspection.
    """

    def __init__(self, operation: str, results: list[OperationResult]):
        self.results = results
        self.summary = batch_summary(results)
        kinds = {r.error.kind for r in results if r.error is not None}
        kind = kinds.pop() if len(kinds) == 1 else RemoteErrorKind.UNKNOWN
        super().__init__(
            kind,
            f"{operation} failed: one or more items failed",
            details=f"{self.summary.failed} of {self.summary.total} failed",
            operation=operation,
        )


async def run_bulk(
    items: Sequence[I],
    op: Callable[[I], Awaitable[T]],
    *,
    max_concurrent: int | None = DEFAULT_MAX_CONCURRENT,
    continue_on_error: bool = False,
    item_id: Callable[[I], str] | None = None,
    operation: str = "bulk operation",
    cancel: asyncio.Event | None = None,
) -> list[OperationResult[T]]:
    """Apply ``op`` to every item with at most ``max_concurrent`` in flight.

    The result list is index-stable: ``results[i]`` belongs to ``items[i]``
    whatever order the items complete in.
    """
    items = list(items)
    if not items:
        raise invalid_input("items", "no items provided")

    semaphore = asyncio.Semaphore(clamp_concurrency(max_concurrent))
    lock = asyncio.Lock()
    results: list[OperationResult[T] | None] = [None] * len(items)

    async def run(index: int, item: I) -> None:
        ident = item_id(item) if item_id else str(index)
        async with semaphore:
            if cancel is not None and cancel.is_set():
                outcome = OperationResult(index, ident, False, error=cancelled())
            else:
                try:
                    value = await op(item)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("%s: item %d (%s) failed: %s", operation, index, ident, e)
                    outcome = OperationResult(index, ident, False, error=to_calendar_error(e, operation))
                else:
                    outcome = OperationResult(index, ident, True, value=value)
        async with lock:
            results[index] = outcome

    await asyncio.gather(*(run(i, item) for i, item in enumerate(items)))

    final: list[OperationResult[T]] = [r for r in results if r is not None]
    if not continue_on_error and any(not r.success for r in final):
        raise BulkOperationError(operation, final)
    return final


# ---------------------------------------------------------------------------
# Calendar batch operations
# ---------------------------------------------------------------------------

async def batch_create_events(
    client: CalendarClient,
    drafts: Sequence[EventDraft],
    calendar_id: str | None = None,
    *,
    max_concurrent: int | None = DEFAULT_MAX_CONCURRENT,
    continue_on_error: bool = False,
    cancel: asyncio.Event | None = None,
) -> list[OperationResult[CalendarEvent]]:
    return await run_bulk(
        drafts,
        lambda draft: client.create_event(draft, calendar_id, cancel=cancel),
        max_concurrent=max_concurrent,
        continue_on_error=continue_on_error,
        item_id=lambda draft: draft.title,
        operation="batch create",
        cancel=cancel,
    )


async def batch_update_events(
    client: CalendarClient,
    updates: Sequence[tuple[str, EventDraft]],
    calendar_id: str | None = None,
    *,
    max_concurrent: int | None = DEFAULT_MAX_CONCURRENT,
    continue_on_error: bool = False,
    cancel: asyncio.Event | None = None,
) -> list[OperationResult[CalendarEvent]]:
    return await run_bulk(
        updates,
        lambda update: client.update_event(update[0], update[1], calendar_id, cancel=cancel),
        max_concurrent=max_concurrent,
        continue_on_error=continue_on_error,
        item_id=lambda update: update[0],
        operation="batch update",
        cancel=cancel,
    )


async def batch_delete_events(
    client: CalendarClient,
    event_ids: Sequence[str],
    calendar_id: str | None = None,
    *,
    max_concurrent: int | None = DEFAULT_MAX_CONCURRENT,
    continue_on_error: bool = False,
    cancel: asyncio.Event | None = None,
) -> list[OperationResult[str]]:
    async def delete(event_id: str) -> str:
        await client.delete_event(event_id, calendar_id, cancel=cancel)
        return event_id

    return await run_bulk(
        event_ids,
        delete,
        max_concurrent=max_concurrent,
        continue_on_error=continue_on_error,
        item_id=lambda event_id: event_id,
        operation="batch delete",
        cancel=cancel,
    )
