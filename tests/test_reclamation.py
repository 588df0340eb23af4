"""Тесты фонового освобождения просроченных слов."""

import asyncio
from datetime import timedelta

import pytest

from wordpool.schemas import SYSTEM_HOLDER, WordState
from wordpool.services.assignment import AssignmentEngine, ClaimTimeoutPolicy
from wordpool.services.reclamation import ReclamationScheduler
from wordpool.services.word_store import MemoryWordStore

POLICY = ClaimTimeoutPolicy(timedelta(minutes=2))


class FailingStore(MemoryWordStore):
    """Первые failures вызовов reclaim_stale падают."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def reclaim_stale(self, cutoff):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("db is down")
        return await super().reclaim_stale(cutoff)


@pytest.mark.asyncio
async def test_sweep_returns_stale_word_to_pool(store, clock):
    await store.bulk_load(["AMOR", "PAZ"])
    engine = AssignmentEngine(store, POLICY, clock)
    scheduler = ReclamationScheduler(store, POLICY, 60, clock)

    await engine.claim_next_word("U1")
    await engine.claim_next_word("U2")
    clock.advance(minutes=3)

    assert await scheduler.sweep_once() == 2

    sample = await store.peek_sample(2)
    assert all(r.state is WordState.UNASSIGNED for r in sample)
    assert all(r.holder == SYSTEM_HOLDER and r.claimed_at is None for r in sample)

    result = await engine.claim_next_word("U3")
    assert result.word.text == "AMOR"


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_assignments(store, clock):
    await store.bulk_load(["AMOR", "PAZ"])
    engine = AssignmentEngine(store, POLICY, clock)
    scheduler = ReclamationScheduler(store, POLICY, 60, clock)

    await engine.claim_next_word("U1")
    clock.advance(minutes=1, seconds=30)
    await engine.claim_next_word("U2")
    clock.advance(minutes=1)

    assert await scheduler.sweep_once() == 1
    assert await store.active_word("U1") is None
    assert (await store.active_word("U2")).text == "PAZ"

    # Повторный проход ничего не меняет
    assert await scheduler.sweep_once() == 0


@pytest.mark.asyncio
async def test_tick_failure_is_isolated(clock):
    store = FailingStore(failures=1)
    await store.bulk_load(["AMOR"])
    await store.try_claim(1, "U1", clock.now)
    scheduler = ReclamationScheduler(store, POLICY, 60, clock)
    clock.advance(minutes=5)

    await scheduler.tick()
    assert scheduler.sweeps_failed == 1
    assert (await store.active_word("U1")) is not None

    await scheduler.tick()
    assert scheduler.sweeps_done == 1
    assert await store.active_word("U1") is None


@pytest.mark.asyncio
async def test_scheduler_loop_survives_failures(clock):
    store = FailingStore(failures=2)
    await store.bulk_load(["AMOR"])
    await store.try_claim(1, "U1", clock.now)
    clock.advance(minutes=5)
    scheduler = ReclamationScheduler(store, POLICY, 0.01, clock)

    scheduler.start()
    for _ in range(200):
        if scheduler.sweeps_done:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert scheduler.sweeps_failed == 2
    assert scheduler.sweeps_done >= 1
    assert await store.active_word("U1") is None


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(store, clock):
    scheduler = ReclamationScheduler(store, POLICY, 60, clock)
    await scheduler.stop()
