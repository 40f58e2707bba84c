"""
mapping-forge — unit tests for async concurrency primitives

File: tests/unit/utils/test_concurrency.py

Purpose
- Validate bounded worker pools, ordered gathering, timeouts and cooperative cancellation.

Non-functional requirements
- Deterministic and non-flaky: ordering is forced with explicit sleeps, never timing races.
"""

from __future__ import annotations

import asyncio

import pytest

from mapping_forge.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    WorkerPool,
    gather_ordered,
    run_with_timeout,
)


async def _delayed(value: int, delay: float) -> int:
    await asyncio.sleep(delay)
    return value


@pytest.mark.asyncio
async def test_gather_ordered_preserves_input_order() -> None:
    results = await gather_ordered(
        [_delayed(1, 0.05), _delayed(2, 0.0), _delayed(3, 0.02)],
        max_concurrency=3,
    )

    assert results == [1, 2, 3]


@pytest.mark.asyncio
async def test_worker_pool_respects_concurrency_limit() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    active = 0
    peak = 0

    async def job(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return value

    seen = [value async for value in pool.run(job(index) for index in range(6))]

    assert sorted(seen) == list(range(6))
    assert peak == 2
    assert pool.semaphore.in_use == 0


@pytest.mark.asyncio
async def test_worker_pool_propagates_first_failure() -> None:
    async def boom() -> int:
        raise RuntimeError("boom")

    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)

    with pytest.raises(RuntimeError, match="boom"):
        async for _ in pool.run([boom(), _delayed(1, 1.0)]):
            pass


def test_worker_pool_rejects_non_positive_limits() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        WorkerPool(max_concurrency=0)
    with pytest.raises(ValueError, match="limit"):
        BoundedSemaphore(0)


@pytest.mark.asyncio
async def test_bounded_semaphore_tracks_permits() -> None:
    semaphore = BoundedSemaphore(2)

    async with semaphore.permit():
        assert semaphore.in_use == 1
        assert semaphore.available == 1

    assert semaphore.in_use == 0
    with pytest.raises(RuntimeError, match="release called more times"):
        semaphore.release()


@pytest.mark.asyncio
async def test_run_with_timeout_returns_value() -> None:
    assert await run_with_timeout(_delayed(7, 0.0), 1.0) == 7


@pytest.mark.asyncio
async def test_run_with_timeout_raises_timeout_error() -> None:
    with pytest.raises(TimeoutError, match="timed out after"):
        await run_with_timeout(_delayed(1, 5.0), 0.05)


@pytest.mark.asyncio
async def test_run_with_timeout_honours_cancellation_token() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_delayed(1, 5.0), 10.0, cancel_token=token)
    await canceller

    assert token.is_cancelled


@pytest.mark.asyncio
async def test_run_with_timeout_rejects_already_cancelled_and_bad_timeout() -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_delayed(1, 0.0), 1.0, cancel_token=token)
    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_with_timeout(_delayed(1, 0.0), 0)


def test_cancellation_token_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()
