"""Tests for the per-contract decision coordinator."""

import asyncio

import pytest

from arbiter.coordination import DecisionCoordinator
from arbiter.exceptions import ConcurrencyConflictError


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_try_start_blocks_second_caller():
    coordinator = DecisionCoordinator()
    assert coordinator.try_start("c1")
    assert not coordinator.try_start("c1")
    assert coordinator.try_start("c2")


def test_begin_raises_conflict_for_in_flight_and_cooling_contracts():
    clock = _Clock()
    coordinator = DecisionCoordinator(cooldown_seconds=15, clock=clock)
    coordinator.begin("c1")

    with pytest.raises(ConcurrencyConflictError, match="already in progress") as exc_info:
        coordinator.begin("c1")
    assert exc_info.value.code == "concurrency_conflict"

    coordinator.finish("c1")
    with pytest.raises(ConcurrencyConflictError, match="cooldown"):
        coordinator.begin("c1")


def test_finish_starts_cooldown():
    clock = _Clock()
    coordinator = DecisionCoordinator(cooldown_seconds=15, clock=clock)

    assert coordinator.try_start("c1")
    coordinator.finish("c1")
    assert not coordinator.is_in_flight("c1")
    assert not coordinator.try_start("c1")

    clock.now += 14.9
    assert coordinator.in_cooldown("c1")

    clock.now += 0.2
    assert coordinator.try_start("c1")


def test_finish_with_custom_cooldown():
    clock = _Clock()
    coordinator = DecisionCoordinator(cooldown_seconds=15, clock=clock)
    coordinator.try_start("c1")
    coordinator.finish("c1", cooldown_seconds=0)
    assert coordinator.try_start("c1")


@pytest.mark.asyncio
async def test_acquire_serializes_callers():
    coordinator = DecisionCoordinator()
    active = 0
    peak = 0

    async def work():
        nonlocal active, peak
        async with coordinator.acquire("c1"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(work() for _ in range(5)))
    assert peak == 1
    assert not coordinator.is_locked("c1")


@pytest.mark.asyncio
async def test_different_contracts_run_concurrently():
    coordinator = DecisionCoordinator()
    both_held = asyncio.Event()
    entered = []

    async def work(contract_id):
        async with coordinator.acquire(contract_id):
            entered.append(contract_id)
            if len(entered) == 2:
                both_held.set()
            await asyncio.wait_for(both_held.wait(), timeout=1)

    await asyncio.gather(work("c1"), work("c2"))
    assert sorted(entered) == ["c1", "c2"]


@pytest.mark.asyncio
async def test_run_exclusive_releases_on_error():
    coordinator = DecisionCoordinator()

    async def boom():
        raise RuntimeError("failed")

    with pytest.raises(RuntimeError):
        await coordinator.run_exclusive("c1", boom)
    assert not coordinator.is_locked("c1")

    async def ok():
        return "done"

    assert await coordinator.run_exclusive("c1", ok) == "done"
