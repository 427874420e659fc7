"""
Tests for the delayed-return token bucket in batchstream.rate_limiter.
"""

import asyncio

import pytest

from batchstream.exceptions import ConfigurationError
from batchstream.rate_limiter import RateLimiter


@pytest.mark.asyncio
async def test_rate_limiter_initialization():
    """Capacity is floored and the retry interval spreads the window over the capacity."""
    limiter = RateLimiter(capacity=25000.7, time_frame=100.0)

    assert limiter.capacity == 25000
    assert limiter.available_tokens == 25000
    assert limiter.retry_interval == pytest.approx(100.0 / 25000.7)


@pytest.mark.asyncio
async def test_burst_up_to_capacity_is_immediate():
    """C admissions of cost 1 succeed without waiting."""
    limiter = RateLimiter(capacity=5, time_frame=10.0)
    loop = asyncio.get_running_loop()
    started = loop.time()

    for _ in range(5):
        await limiter.admit(cost=1)

    assert loop.time() - started < 0.05
    assert limiter.available_tokens == 0
    limiter.close()


@pytest.mark.asyncio
async def test_admission_beyond_capacity_waits_for_refill():
    """The (C+1)th admission waits until the first tokens come back."""
    limiter = RateLimiter(capacity=3, time_frame=0.2)
    loop = asyncio.get_running_loop()
    started = loop.time()

    for _ in range(3):
        await limiter.admit_one()
    await limiter.admit_one()

    assert loop.time() - started >= 0.19
    limiter.close()


@pytest.mark.asyncio
async def test_admitted_cost_never_exceeds_capacity_per_window():
    """Within any window the limiter admits at most ``capacity`` tokens."""
    capacity = 3
    window = 0.1
    limiter = RateLimiter(capacity=capacity, time_frame=window)
    loop = asyncio.get_running_loop()
    admitted_at: list[float] = []

    async def admit_and_record() -> None:
        await limiter.admit(cost=1)
        admitted_at.append(loop.time())

    await asyncio.gather(*(admit_and_record() for _ in range(9)))

    admitted_at.sort()
    for index in range(len(admitted_at) - capacity):
        assert admitted_at[index + capacity] - admitted_at[index] >= window - 1e-3
    limiter.close()


@pytest.mark.asyncio
async def test_tokens_return_after_time_frame():
    """Spent tokens are restored in one piece once the window elapsed."""
    limiter = RateLimiter(capacity=4, time_frame=0.05)

    await limiter.admit(cost=3)
    assert limiter.available_tokens == 1

    await asyncio.sleep(0.08)
    assert limiter.available_tokens == 4


@pytest.mark.asyncio
async def test_concurrent_admissions_do_not_lose_updates():
    """Concurrent admissions deduct exactly their combined cost."""
    limiter = RateLimiter(capacity=10, time_frame=10.0)

    await asyncio.gather(*(limiter.admit(cost=2) for _ in range(5)))

    assert limiter.available_tokens == 0
    limiter.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("cost", [0, 11])
async def test_impossible_cost_is_rejected(cost: int):
    """A cost that can never be admitted fails immediately."""
    limiter = RateLimiter(capacity=10, time_frame=1.0)

    with pytest.raises(ConfigurationError):
        await limiter.admit(cost=cost)
    assert limiter.available_tokens == 10


@pytest.mark.parametrize(("capacity", "time_frame"), [(0, 1.0), (10, 0)])
def test_invalid_bucket_is_rejected(capacity: float, time_frame: float):
    with pytest.raises(ConfigurationError):
        RateLimiter(capacity=capacity, time_frame=time_frame)


@pytest.mark.asyncio
async def test_close_cancels_pending_refills():
    limiter = RateLimiter(capacity=2, time_frame=0.02)
    await limiter.admit(cost=2)

    limiter.close()
    await asyncio.sleep(0.05)

    assert limiter.available_tokens == 0
