"""
Delayed-return token bucket gating admission of batches into the network.

Spent tokens are not replenished at a steady rate: every successful admission
schedules one deferred refill of exactly the admitted cost, ``time_frame``
seconds later. Up to ``capacity`` units pass immediately, after which the
admission rate settles at roughly ``capacity / time_frame``.
"""

from __future__ import annotations

import asyncio
import math

import structlog

from batchstream.exceptions import ConfigurationError

log = structlog.get_logger(__name__)


class RateLimiter:
    """
    Asyncio token bucket with one deferred refill per admission.

    Parameters
    ----------
    capacity : float
        Tokens available in a full bucket. Floored on construction.
    time_frame : float
        Seconds after which admitted tokens return to the bucket.

    Notes
    -----
    The token counter is owned by the event loop running the limiter. Admission
    bookkeeping is serialized by an ``asyncio.Lock`` and refills run as loop
    callbacks, so no update is lost between concurrent ``admit`` calls.
    """

    def __init__(self, capacity: float, time_frame: float):
        if capacity < 1:
            raise ConfigurationError(f"capacity must be at least 1, got {capacity}")
        if time_frame <= 0:
            raise ConfigurationError(f"time_frame must be positive, got {time_frame}")
        self._capacity = math.floor(capacity)
        self._available_tokens = self._capacity
        self._time_frame = time_frame
        self._retry_interval = time_frame / capacity
        self._lock = asyncio.Lock()
        self._refills: set[asyncio.TimerHandle] = set()

        log.debug(
            event="Initialized RateLimiter",
            capacity=self._capacity,
            time_frame=time_frame,
            retry_interval=self._retry_interval,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available_tokens(self) -> int:
        return self._available_tokens

    @property
    def retry_interval(self) -> float:
        return self._retry_interval

    async def admit(self, cost: int = 1) -> None:
        """
        Wait until ``cost`` tokens are available and deduct them.

        Parameters
        ----------
        cost : int
            Tokens to take from the bucket.

        Raises
        ------
        ConfigurationError
            If ``cost`` is below 1 or above the bucket capacity, since such a
            request could never be admitted.
        """
        if cost < 1 or cost > self._capacity:
            raise ConfigurationError(
                f"cost {cost} cannot be admitted by a bucket of capacity {self._capacity}"
            )
        attempts = 0
        while not await self._try_take(cost=cost):
            attempts += 1
            await asyncio.sleep(self._retry_interval)
        if attempts:
            log.debug(event="Admission delayed", cost=cost, retries=attempts)

    async def admit_one(self) -> None:
        await self.admit(cost=1)

    async def _try_take(self, *, cost: int) -> bool:
        async with self._lock:
            self._available_tokens -= cost
            if self._available_tokens < 0:
                self._available_tokens += cost
                return False
            loop = asyncio.get_running_loop()
            handle: asyncio.TimerHandle | None = None

            def _refill() -> None:
                self._available_tokens += cost
                self._refills.discard(handle)

            handle = loop.call_later(self._time_frame, _refill)
            self._refills.add(handle)
            return True

    def close(self) -> None:
        """
        Cancel pending refills, e.g. before the event loop shuts down.
        """
        for handle in self._refills:
            handle.cancel()
        self._refills.clear()
