"""Bounded-concurrency FIFO scheduler for outbound HTTP calls."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 45


class RequestScheduler:
    """Run submitted coroutines with at most ``concurrency`` in flight.

    Work starts in submission order. A failing task only rejects its own
    caller; there is no timeout or cancellation here, so a hung task keeps
    its slot until it returns.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError("Scheduler concurrency must be at least 1")
        self._concurrency = concurrency
        self._queue: deque[
            tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]
        ] = deque()
        self._running: set[asyncio.Task[None]] = set()
        self._active = 0
        self._peak_active = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active(self) -> int:
        return self._active

    @property
    def peak_active(self) -> int:
        return self._peak_active

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def submit(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Queue ``fn`` and wait for its result."""

        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append((fn, future))
        self._dispatch()
        return await future

    def _dispatch(self) -> None:
        while self._queue and self._active < self._concurrency:
            fn, future = self._queue.popleft()
            if future.done():
                # Waiter went away before the task started.
                continue
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)
            task = asyncio.ensure_future(self._run(fn, future))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _run(
        self, fn: Callable[[], Awaitable[Any]], future: asyncio.Future[Any]
    ) -> None:
        try:
            result = await fn()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._dispatch()

    async def aclose(self) -> None:
        """Cancel queued work and wait for in-flight tasks to settle."""

        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()
        if self._running:
            logger.debug("Waiting for %d in-flight scheduler tasks", len(self._running))
            await asyncio.gather(*self._running, return_exceptions=True)
