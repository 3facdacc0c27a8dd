"""Bounded-concurrency fold over an async stream of work items."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from pulse_namespaces.config import ScanFailurePolicy

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class BatchResult:
    """Counters for one fold. ``succeeded`` counts handlers returning True."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0


async def fold_bounded(
    items: AsyncIterator[T],
    handler: Callable[[T], Coroutine[Any, Any, bool]],
    *,
    concurrency: int,
    policy: ScanFailurePolicy = ScanFailurePolicy.ABORT,
    label: str = "batch",
) -> BatchResult:
    """Run ``handler`` over ``items`` with at most ``concurrency`` in flight.

    ``items`` is pulled lazily: the next item is only requested once a
    handler slot is free, so a paginated source fetches pages on demand.

    With ``ABORT`` the first handler failure cancels the in-flight
    handlers, stops consuming ``items`` and is re-raised. With
    ``CONTINUE`` failures are logged and counted. If ``items`` itself
    raises, in-flight handlers are cancelled and the error propagates.
    """
    if concurrency < 1:
        msg = f"concurrency must be >= 1, got {concurrency}"
        raise ValueError(msg)

    result = BatchResult()
    semaphore = asyncio.Semaphore(concurrency)
    in_flight: set[asyncio.Task[bool]] = set()
    first_error: BaseException | None = None

    def _on_done(task: asyncio.Task[bool]) -> None:
        nonlocal first_error
        in_flight.discard(task)
        semaphore.release()
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            if task.result():
                result.succeeded += 1
            return
        result.failed += 1
        if policy is ScanFailurePolicy.ABORT:
            if first_error is None:
                first_error = exc
        else:
            logger.error(
                "batch_item_failed",
                batch=label,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    try:
        async for item in items:
            await semaphore.acquire()
            if first_error is not None:
                semaphore.release()
                break
            result.processed += 1
            task = asyncio.create_task(handler(item))
            in_flight.add(task)
            task.add_done_callback(_on_done)
        while in_flight and first_error is None:
            await asyncio.wait(
                set(in_flight), return_when=asyncio.FIRST_EXCEPTION
            )
    finally:
        for task in list(in_flight):
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

    if first_error is not None:
        raise first_error
    return result
