"""Concurrency gate for outbound completion calls.

``ConcurrencyGate`` bounds how many API calls are in flight at once and
enforces a minimum spacing between successive grants, protecting a
rate-limited upstream from bursts.

Semantics
---------
- ``await acquire()`` returns once (a) fewer than ``max_concurrent`` permits
  are held and (b) at least ``min_interval_ms`` have elapsed since the last
  grant anywhere in the gate.  It may sleep; it never fails.
- ``release()`` returns a permit.  If callers are queued, the permit is
  handed directly to the oldest one, so grants are strictly FIFO and a
  late arrival can never overtake a queued caller.
- A ``release()`` without an outstanding permit floors the held count at
  zero instead of going negative.

The permit is reserved *before* the interval sleep, so a caller that is
waiting out the spacing already counts against ``max_concurrent``.

All state lives on the event loop and is only touched inside
``acquire``/``release``; no thread-safety is provided or needed.

Usage::

    gate = ConcurrencyGate(max_concurrent=2, min_interval_ms=1000)

    async with gate:
        await client.translate(text, "ja", "zh")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """FIFO permit gate with a minimum interval between grants.

    Attributes:
        _max_concurrent:  Upper bound on simultaneously held permits (>= 1).
        _min_interval:    Minimum spacing between grants, in seconds.
        _held:            Permits currently held (including callers that are
                          sleeping out the interval).
        _waiters:         Queued callers, oldest first.
        _last_grant:      Clock reading of the most recent grant, ``None``
                          before the first one.
        _spacing_lock:    Serialises the interval check so that two callers
                          released together are still spaced apart.
    """

    def __init__(
        self,
        max_concurrent: int = 1,
        min_interval_ms: float = 0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialise the gate.

        Out-of-range values are coerced rather than rejected:
        ``max_concurrent <= 0`` becomes 1 and a negative interval becomes 0.

        Args:
            max_concurrent:  Maximum permits held at once.
            min_interval_ms: Minimum milliseconds between two grants.
            clock:           Monotonic clock in seconds (injectable for tests).
            sleep:           Coroutine used to wait out the interval.
        """
        self._max_concurrent = max(1, int(max_concurrent))
        self._min_interval_ms = max(0, int(min_interval_ms))
        self._min_interval = self._min_interval_ms / 1000.0
        self._clock = clock
        self._sleep = sleep

        self._held = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._last_grant: float | None = None
        self._spacing_lock = asyncio.Lock()

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def min_interval_ms(self) -> int:
        return self._min_interval_ms

    @property
    def held(self) -> int:
        """Number of permits currently held."""
        return self._held

    @property
    def waiting(self) -> int:
        """Number of callers queued for a permit."""
        return sum(1 for fut in self._waiters if not fut.done())

    # ── Acquire / release ─────────────────────────────────────────────────────

    async def acquire(self) -> None:
        """Wait for a permit, then wait out the minimum interval."""
        await self._reserve_slot()
        try:
            await self._wait_for_interval()
        except BaseException:
            # Cancelled while spacing: hand the slot back before propagating.
            self.release()
            raise

    def release(self) -> None:
        """Return a permit and wake the oldest queued caller, if any."""
        if self._held <= 0:
            logger.warning("ConcurrencyGate: release() called with no permit held; ignoring.")
            self._held = 0
        else:
            self._held -= 1
        self._wake_waiters()

    async def __aenter__(self) -> ConcurrencyGate:
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()

    # ── Internal helpers ──────────────────────────────────────────────────────

    async def _reserve_slot(self) -> None:
        # Fast path only when nobody is queued, otherwise FIFO would break.
        if self._held < self._max_concurrent and not self._waiters:
            self._held += 1
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            # release() increments _held on our behalf before resolving.
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # The permit was handed over just as we were cancelled.
                self.release()
            else:
                self._discard_waiter(fut)
            raise

    async def _wait_for_interval(self) -> None:
        async with self._spacing_lock:
            if self._last_grant is not None and self._min_interval > 0:
                elapsed = self._clock() - self._last_grant
                remaining = self._min_interval - elapsed
                if remaining > 0:
                    logger.debug("ConcurrencyGate: spacing grant by %.3fs", remaining)
                    await self._sleep(remaining)
            self._last_grant = self._clock()

    def _wake_waiters(self) -> None:
        while self._waiters and self._held < self._max_concurrent:
            fut = self._waiters.popleft()
            if fut.done():
                continue
            self._held += 1
            fut.set_result(None)

    def _discard_waiter(self, fut: asyncio.Future[None]) -> None:
        if fut in self._waiters:
            self._waiters.remove(fut)
        # A cancelled head-of-queue may be blocking callers behind it.
        self._wake_waiters()
