"""Shared concurrency primitives for background ingestion.

Two patterns are exposed:

1. **BoundedTaskRunner** -- fire-and-forget task spawner with a fixed number
   of execution slots.  The ingestion pipeline uses one runner so that an
   upload burst queues behind the semaphore instead of starting an unbounded
   number of extract/embed jobs.  Spawned tasks are tracked (asyncio only
   keeps weak references) and can be drained on shutdown.

2. **throttled_gather** -- a drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  Used by the CLI
   when ingesting several files in one invocation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Coroutine, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


class BoundedTaskRunner:
    """Run coroutines on independent tasks, at most ``max_concurrent`` at once.

    Parameters
    ----------
    max_concurrent:
        Number of coroutines allowed to execute simultaneously.  Extra
        tasks are created immediately but wait on the semaphore.
    name:
        Label used in log events and task names.
    """

    def __init__(self, max_concurrent: int = 4, name: str = "worker") -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self._max_concurrent = max_concurrent
        self._name = name
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Number of spawned tasks that have not finished yet."""
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, _T], *, name: str | None = None) -> asyncio.Task[_T]:
        """Schedule *coro* on its own task and return immediately.

        The returned task is retained until it completes so it cannot be
        garbage-collected mid-flight.
        """

        async def _guarded() -> _T:
            async with self._semaphore:
                return await coro

        task = asyncio.create_task(_guarded(), name=name or f"{self._name}-task")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight task to finish (used on shutdown)."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _logger.info("task_runner_draining", runner=self._name, pending=len(pending))
        await asyncio.gather(*pending, return_exceptions=True)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            _logger.warning("task_cancelled", runner=self._name, task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            # Tasks are expected to record their own failures; reaching here
            # means a coroutine let an exception escape.
            _logger.error(
                "task_unhandled_exception",
                runner=self._name,
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many run at the same time.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(*(_wrapped(c) for c in coros), return_exceptions=return_exceptions)
