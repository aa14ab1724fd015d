"""Bounded-concurrency work queue that feeds probes to pipeline workers.

The queue knows nothing about discovery.  After every successful worker it
asks ``on_complete`` what to do next (see :class:`QueueDecision`); on
``enqueue`` it pulls a fresh item from ``produce``.  Items already queued
when the queue closes still run.  The queue is drained once it is closed,
nothing is queued and nothing is in flight.

A worker that raises aborts the whole queue: queued items are dropped, the
other workers are cancelled, and :meth:`ProbeQueue.join` re-raises the
first error once every worker has unwound.

Usage::

    queue = ProbeQueue(pipeline.run, 10, on_complete, state.issue_probe)
    for _ in range(n):
        queue.push(state.issue_probe())
    await queue.join()
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING, Generic, TypeVar

from storspan.discovery.policy import QueueDecision

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProbeQueue(Generic[T]):
    """Run at most ``concurrency`` workers, refilling via a completion policy.

    Args:
        worker: Coroutine function run once per item
        concurrency: Maximum workers in flight
        on_complete: Called with the item after each successful worker;
            returns the next :class:`QueueDecision`
        produce: Returns a new item when the decision is ``enqueue``
    """

    def __init__(
        self,
        worker: Callable[[T], Coroutine[object, object, object]],
        concurrency: int,
        on_complete: Callable[[T], QueueDecision],
        produce: Callable[[], T],
    ) -> None:
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.concurrency = concurrency
        self._worker = worker
        self._on_complete = on_complete
        self._produce = produce

        self._queued: deque[T] = deque()
        self._running: dict[asyncio.Task, T] = {}
        self._closed = False
        self._drained = asyncio.Event()
        self._error: BaseException | None = None
        self.completed = 0

    # ─── State ──────────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def drained(self) -> bool:
        return self._drained.is_set()

    @property
    def in_flight(self) -> int:
        return len(self._running)

    @property
    def queued(self) -> int:
        return len(self._queued)

    @property
    def error(self) -> BaseException | None:
        return self._error

    # ─── Control ────────────────────────────────────────────────────────────

    def push(self, item: T) -> None:
        """Queue an item, starting it at once if a worker slot is free.

        Raises:
            RuntimeError: if the queue has been closed
        """
        if self._closed:
            raise RuntimeError(f"cannot push {item!r}: queue is closed")
        self._queued.append(item)
        self._dispatch()

    def close(self) -> None:
        """Stop accepting new items.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._check_drained()

    async def join(self) -> None:
        """Wait until the queue drains, re-raising a worker failure."""
        await self._drained.wait()
        if self._error is not None:
            raise self._error

    async def abort(self) -> None:
        """Cancel all work and wait for the workers to unwind."""
        self._closed = True
        self._queued.clear()
        tasks = list(self._running)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._check_drained()

    # ─── Internals ──────────────────────────────────────────────────────────

    def _dispatch(self) -> None:
        while (
            self._queued
            and len(self._running) < self.concurrency
            and self._error is None
        ):
            item = self._queued.popleft()
            task = asyncio.create_task(self._worker(item), name=f"probe-{item}")
            self._running[task] = item
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        item = self._running.pop(task)

        if task.cancelled() or self._error is not None:
            self._check_drained()
            return

        exc = task.exception()
        if exc is not None:
            self._fail(item, exc)
            return

        self.completed += 1
        try:
            decision = self._on_complete(item)
            if decision is QueueDecision.enqueue:
                self.push(self._produce())
            elif decision is QueueDecision.close:
                self.close()
        except Exception as e:
            self._fail(item, e)
            return

        self._dispatch()
        self._check_drained()

    def _fail(self, item: T, exc: BaseException) -> None:
        logger.error("Probe %s failed, aborting run: %s", item, exc)
        self._error = exc
        self._closed = True
        self._queued.clear()
        for task in self._running:
            task.cancel()
        self._check_drained()

    def _check_drained(self) -> None:
        if self._closed and not self._queued and not self._running:
            self._drained.set()
