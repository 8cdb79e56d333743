"""Tests for startup recovery."""

import asyncio
from dataclasses import replace
from datetime import date, timedelta

import pytest

from herald.scheduling.engine import SchedulerEngine
from herald.scheduling.errors import PersistenceError
from herald.scheduling.manager import TaskManager
from herald.scheduling.recovery import RecoveryConfig, recover_pending, with_backoff
from herald.scheduling.store import SQLTaskStore
from herald.scheduling.types import TaskStatus
from tests.conftest import (
    START,
    FakeClock,
    RecordingDeliverer,
    eventually,
    make_task,
    settle,
    wait_for_status,
)

FAST = RecoveryConfig(base_delay=0.0, max_delay=0.0)


class FlakyStore:
    """Wraps a store and fails `find` a fixed number of times."""

    def __init__(self, store: SQLTaskStore, failures: int) -> None:
        self._store = store
        self.failures = failures
        self.calls = 0

    async def find(self, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise PersistenceError("database is locked")
        return await self._store.find(**kwargs)


class TestRecoverPending:
    """Tests for recover_pending."""

    async def test_arms_only_pending(
        self, store: SQLTaskStore, engine: SchedulerEngine
    ):
        await store.add(make_task("p1", scheduled_time="13:00"))
        await store.add(make_task("p2", scheduled_time="14:00"))
        await store.add(make_task("s1", status=TaskStatus.SENT))
        await store.add(make_task("f1", status=TaskStatus.FAILED, retry_count=1))

        report = await recover_pending(store, engine, FAST)

        assert sorted(report.armed) == ["p1", "p2"]
        assert report.stale == []
        assert report.attempts == 1
        assert sorted(engine.registry.ids()) == ["p1", "p2"]

    async def test_recovered_tasks_fire(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
        clock: FakeClock,
    ):
        """Test a pending task recovered after a restart is delivered on time."""
        await store.add(make_task("p1", scheduled_time="12:05"))
        await recover_pending(store, engine, FAST)

        await settle()
        assert deliverer.ids == []

        clock.advance(minutes=5)
        await wait_for_status(store, "p1", TaskStatus.SENT)
        assert deliverer.ids == ["p1"]

    async def test_missed_task_fires_immediately(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
    ):
        await store.add(make_task("missed", scheduled_time="08:00"))
        report = await recover_pending(store, engine, FAST)

        assert report.armed == ["missed"]
        await eventually(lambda: deliverer.ids == ["missed"])

    async def test_stale_task_is_skipped(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
    ):
        await store.add(make_task("ancient", scheduled_date=date(2026, 2, 20)))
        await store.add(make_task("recent", scheduled_time="13:00"))

        report = await recover_pending(store, engine, FAST)

        assert report.stale == ["ancient"]
        assert report.armed == ["recent"]
        assert not engine.is_armed("ancient")

        await settle()
        assert deliverer.started == []
        # Still visible to operators as overdue
        manager = TaskManager(store=store, engine=engine)
        assert [t.id for t in await manager.list_due()] == ["ancient"]

    async def test_no_lookback_arms_everything(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
    ):
        await store.add(make_task("ancient", scheduled_date=date(2025, 1, 1)))
        config = RecoveryConfig(lookback=None, base_delay=0.0)

        report = await recover_pending(store, engine, config)

        assert report.armed == ["ancient"]
        await eventually(lambda: deliverer.ids == ["ancient"])

    async def test_is_idempotent(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
        clock: FakeClock,
    ):
        await store.add(make_task("p1"))
        await recover_pending(store, engine, FAST)
        await recover_pending(store, engine, FAST)

        assert engine.armed_count == 1
        clock.advance(minutes=10)
        await wait_for_status(store, "p1", TaskStatus.SENT)
        await settle()
        assert deliverer.ids == ["p1"]

    async def test_second_run_during_delivery_does_not_redeliver(
        self,
        store: SQLTaskStore,
        engine: SchedulerEngine,
        deliverer: RecordingDeliverer,
        clock: FakeClock,
    ):
        deliverer.gate = asyncio.Event()
        await store.add(make_task("p1"))
        await recover_pending(store, engine, FAST)
        clock.advance(minutes=10)
        await eventually(lambda: deliverer.started == ["p1"])

        report = await recover_pending(store, engine, FAST)
        assert report.armed == ["p1"]
        deliverer.gate.set()

        await wait_for_status(store, "p1", TaskStatus.SENT)
        await eventually(lambda: not engine.is_armed("p1"))
        await settle()
        assert deliverer.started == ["p1"]

    async def test_lookback_uses_persisted_fire_at(
        self, store: SQLTaskStore, engine: SchedulerEngine
    ):
        """Test a record whose date fields are old but whose fire_at is not."""
        task = replace(
            make_task("moved", scheduled_date=date(2026, 2, 20)),
            fire_at=START + timedelta(hours=1),
        )
        await store.add(task)

        report = await recover_pending(store, engine, FAST)

        assert report.armed == ["moved"]
        assert report.stale == []
        assert engine.registry.get("moved").fire_at == task.fire_at

    async def test_retries_transient_failures(
        self, store: SQLTaskStore, engine: SchedulerEngine
    ):
        await store.add(make_task("p1"))
        flaky = FlakyStore(store, failures=2)

        report = await recover_pending(flaky, engine, FAST)

        assert report.attempts == 3
        assert report.armed == ["p1"]

    async def test_exhausted_attempts_raise(
        self, store: SQLTaskStore, engine: SchedulerEngine
    ):
        flaky = FlakyStore(store, failures=10)
        config = RecoveryConfig(max_attempts=3, base_delay=0.0)

        with pytest.raises(PersistenceError, match="locked"):
            await recover_pending(flaky, engine, config)

        assert flaky.calls == 3
        assert engine.armed_count == 0


class TestWithBackoff:
    """Tests for the backoff helper."""

    async def test_returns_first_success(self):
        calls = 0

        async def func():
            nonlocal calls
            calls += 1
            return "ok"

        assert await with_backoff(func, FAST) == "ok"
        assert calls == 1

    async def test_does_not_retry_other_errors(self):
        calls = 0

        async def func():
            nonlocal calls
            calls += 1
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await with_backoff(func, FAST)
        assert calls == 1

    async def test_delays_grow_and_cap(self, monkeypatch: pytest.MonkeyPatch):
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        monkeypatch.setattr("herald.scheduling.recovery.asyncio.sleep", fake_sleep)

        async def func():
            raise PersistenceError("down")

        config = RecoveryConfig(max_attempts=5, base_delay=1.0, max_delay=5.0)
        with pytest.raises(PersistenceError):
            await with_backoff(func, config)

        assert delays == [1.0, 2.0, 4.0, 5.0]

    async def test_zero_attempts(self):
        async def func():
            return "never"

        with pytest.raises(PersistenceError, match="no attempts"):
            await with_backoff(func, RecoveryConfig(max_attempts=0))


class TestRecoveryConfig:
    def test_from_scheduler_config(self):
        from herald.config.models import SchedulerConfig

        config = RecoveryConfig.from_scheduler_config(
            SchedulerConfig(
                recovery_lookback_hours=6,
                recovery_attempts=2,
                recovery_base_delay=0.5,
            )
        )
        assert config.lookback == timedelta(hours=6)
        assert config.max_attempts == 2
        assert config.base_delay == 0.5

    def test_lookback_disabled(self):
        from herald.config.models import SchedulerConfig

        config = RecoveryConfig.from_scheduler_config(
            SchedulerConfig(recovery_lookback_hours=None)
        )
        assert config.lookback is None
