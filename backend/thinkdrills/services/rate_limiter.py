"""RateLimiter: keeps calls to the completion provider under its quotas.

Rules:
  - Two (or more) sliding windows, each with its own ceiling. A call is
    admitted only when every window has room for it.
  - Admissions are at least ``min_interval`` seconds apart, independent of
    the window math.
  - Callers are admitted strictly in arrival order. One worker task drains
    the queue and is the only code that touches the window timestamps.
  - Suspension is always ``await sleep(...)``; the event loop keeps serving
    other requests meanwhile.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("thinkdrills.rate_limiter")


@dataclass
class RateWindow:
    duration: float      # seconds
    max_requests: int
    timestamps: deque = field(default_factory=deque)

    def prune(self, now: float) -> None:
        while self.timestamps and now - self.timestamps[0] >= self.duration:
            self.timestamps.popleft()

    def wait_time(self, now: float) -> float:
        """Seconds until this window can take one more call (0 if it can now)."""
        self.prune(now)
        if len(self.timestamps) < self.max_requests:
            return 0.0
        # The entry that has to expire is the one that brings us back under max.
        blocking = self.timestamps[len(self.timestamps) - self.max_requests]
        return max(0.0, self.duration - (now - blocking))


class RateLimiter:
    def __init__(
        self,
        windows: list[RateWindow],
        min_interval: float = 0.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not windows:
            raise ValueError("RateLimiter needs at least one window")
        for w in windows:
            if w.max_requests < 1:
                raise ValueError(f"max_requests must be >= 1, got {w.max_requests}")
            if w.duration <= 0:
                raise ValueError(f"window duration must be > 0, got {w.duration}")
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")

        self._windows = windows
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[asyncio.Future] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._last_admitted: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        return cls(
            [
                RateWindow(duration=60.0, max_requests=settings.requests_per_minute),
                RateWindow(duration=3600.0, max_requests=settings.requests_per_hour),
            ],
            min_interval=settings.retry_delay,
        )

    @property
    def windows(self) -> list[RateWindow]:
        return self._windows

    @property
    def pending(self) -> int:
        return sum(1 for f in self._queue if not f.done())

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def wait_for_availability(self) -> None:
        """Return once this caller has been admitted and recorded."""
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        self._queue.append(fut)
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        await fut

    def reset(self) -> None:
        for w in self._windows:
            w.timestamps.clear()
        self._last_admitted = None
        while self._queue:
            fut = self._queue.popleft()
            if not fut.done():
                fut.cancel()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        self._worker = None

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _wait_time(self, now: float) -> float:
        wait = max(w.wait_time(now) for w in self._windows)
        if self._last_admitted is not None:
            wait = max(wait, self._min_interval - (now - self._last_admitted))
        return wait

    async def _drain(self) -> None:
        while self._queue:
            fut = self._queue[0]
            if fut.done():
                # Caller gave up while queued.
                self._queue.popleft()
                continue

            wait = self._wait_time(self._clock())
            if wait > 0:
                logger.debug("[rate_limiter] waiting %.3fs (queue=%d)", wait, len(self._queue))
                await self._sleep(wait)
                continue

            self._queue.popleft()
            if fut.done():
                continue
            now = self._clock()
            for w in self._windows:
                w.timestamps.append(now)
            self._last_admitted = now
            fut.set_result(None)
