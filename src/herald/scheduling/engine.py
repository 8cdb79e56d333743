"""Scheduler engine: one-shot timers bound to task fire instants.

The engine owns a TimerRegistry and arms one asyncio task per pending
record. A timer sleeps in bounded slices against the injected clock, fires
once, and removes itself from the registry whatever the outcome. Nothing
here re-arms a timer after it fired.
"""

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from herald.scheduling.delivery import Deliverer
from herald.scheduling.errors import ImmutableStateError, NotFoundError, PersistenceError
from herald.scheduling.registry import Timer, TimerRegistry
from herald.scheduling.state import mark_failed, mark_sent
from herald.scheduling.store import TaskStore
from herald.scheduling.types import Clock, ScheduledTask, TaskStatus, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TIMER_RESOLUTION = 30.0


class SchedulerEngine:
    """Arms, disarms and fires one-shot delivery timers.

    Example:
        engine = SchedulerEngine(store, LogDeliverer(), zone=ZoneInfo("UTC"))
        engine.arm(task)
        ...
        await engine.shutdown()
    """

    def __init__(
        self,
        store: TaskStore,
        deliver: Deliverer,
        *,
        zone: ZoneInfo | None = None,
        clock: Clock = utc_now,
        resolution: float = DEFAULT_TIMER_RESOLUTION,
        registry: TimerRegistry | None = None,
    ) -> None:
        self._store = store
        self._deliver = deliver
        self._zone = zone or ZoneInfo("UTC")
        self._clock = clock
        self._resolution = resolution
        self._registry = registry or TimerRegistry()
        self._runners: set[asyncio.Task[None]] = set()
        # Timers whose delivery has started, by task id
        self._in_flight: dict[str, Timer] = {}

    @property
    def registry(self) -> TimerRegistry:
        return self._registry

    @property
    def zone(self) -> ZoneInfo:
        return self._zone

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def armed_count(self) -> int:
        return len(self._registry)

    def is_armed(self, task_id: str) -> bool:
        return task_id in self._registry

    def is_firing(self, task_id: str) -> bool:
        """True while a delivery for `task_id` is in flight."""
        return task_id in self._in_flight

    def arm(self, task: ScheduledTask) -> Timer:
        """Start a one-shot timer for a pending task at its persisted `fire_at`.

        Any waiting timer for the same id is cancelled first. While a
        delivery for the id is in flight nothing is armed and the firing
        timer is returned. A fire instant already in the past fires on the
        next loop iteration.

        Must be called from within the running event loop.
        """
        if task.status != TaskStatus.PENDING:
            raise ImmutableStateError(
                f"Only pending tasks can be armed (task {task.id} is {task.status})"
            )

        firing = self._in_flight.get(task.id)
        if firing is not None:
            logger.info("arm_skipped_during_delivery", extra={"task.id": task.id})
            return firing

        fire_at = task.fire_at
        timer = Timer(task.id, fire_at)
        runner = asyncio.get_running_loop().create_task(
            self._run(timer), name=f"herald-timer-{task.id}"
        )
        timer.bind(runner)
        self._runners.add(runner)
        runner.add_done_callback(self._runners.discard)
        # Registered before the runner gets its first step
        self._registry.set(task.id, timer)

        delay = (fire_at - self._clock()).total_seconds()
        logger.info(
            "task_armed",
            extra={
                "task.id": task.id,
                "task.fire_at": fire_at.isoformat(),
                "task.delay_s": round(max(delay, 0.0), 1),
            },
        )
        return timer

    def disarm(self, task_id: str) -> bool:
        """Cancel the waiting timer for `task_id`.

        Returns False when there is none, or when its delivery is already in
        flight. An in-flight delivery is not interrupted and its timer stays
        registered until the outcome is written.
        """
        if task_id in self._in_flight:
            logger.info("disarm_during_delivery", extra={"task.id": task_id})
            return False
        if not self._registry.remove(task_id):
            return False
        logger.info("task_disarmed", extra={"task.id": task_id})
        return True

    async def shutdown(self, grace: float = 5.0) -> None:
        """Cancel waiting timers and give in-flight deliveries `grace` seconds."""
        cancelled = self._registry.clear()
        pending = [r for r in self._runners if not r.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for runner in still_running:
                runner.cancel()
            if still_running:
                await asyncio.wait(still_running)
        logger.info("scheduler_stopped", extra={"timers.cancelled": cancelled})

    # ------------------------------------------------------------------
    # Timer internals
    # ------------------------------------------------------------------

    async def _run(self, timer: Timer) -> None:
        try:
            await self._wait_until(timer.fire_at)
            await self._fire(timer)
        except asyncio.CancelledError:
            logger.debug("timer_cancelled", extra={"task.id": timer.task_id})
            raise
        except Exception:
            logger.exception("timer_error", extra={"task.id": timer.task_id})
        finally:
            self._registry.remove_if(timer.task_id, timer)

    async def _wait_until(self, fire_at: datetime) -> None:
        # Re-read the clock every slice so wall-clock jumps are observed
        while True:
            remaining = (fire_at - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self._resolution))

    async def _fire(self, timer: Timer) -> None:
        task_id = timer.task_id

        try:
            task = await self._store.get(task_id)
        except PersistenceError as e:
            logger.error(
                "task_load_failed",
                extra={"task.id": task_id, "error.message": str(e)},
            )
            return

        if task is None or task.status != TaskStatus.PENDING:
            logger.info(
                "timer_fired_for_inactive_task",
                extra={
                    "task.id": task_id,
                    "task.status": task.status.value if task else "deleted",
                },
            )
            return

        # No await between the ownership check and claiming the timer
        if (
            not self._registry.owns(task_id, timer)
            or timer.cancelled
            or task_id in self._in_flight
        ):
            logger.debug("timer_superseded", extra={"task.id": task_id})
            return
        timer.firing = True
        self._in_flight[task_id] = timer
        try:
            await self._deliver_and_record(task)
        finally:
            del self._in_flight[task_id]

    async def _deliver_and_record(self, task: ScheduledTask) -> None:
        task_id = task.id
        logger.info(
            "scheduled_task_triggered",
            extra={
                "task.id": task_id,
                "task.recipient_type": task.recipient_type.value,
                "task.priority": task.priority.value,
            },
        )

        error: str | None = None
        try:
            await self._deliver(task)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning(
                "delivery_failed",
                extra={
                    "task.id": task_id,
                    "error.type": type(e).__name__,
                    "error.message": error,
                },
            )

        await self._record_outcome(task_id, error)

    async def _record_outcome(self, task_id: str, error: str | None) -> None:
        """Apply the delivery result to the freshly loaded record."""
        now = self._clock()
        try:
            task = await self._store.get(task_id)
            if task is None:
                logger.warning("task_deleted_during_delivery", extra={"task.id": task_id})
                return
            if task.status != TaskStatus.PENDING:
                logger.warning(
                    "task_changed_during_delivery",
                    extra={"task.id": task_id, "task.status": task.status.value},
                )
                return

            if error is None:
                mark_sent(task, now)
            else:
                mark_failed(task, error, now)
            await self._store.update(task)
        except (PersistenceError, NotFoundError) as e:
            # The message went out (or failed) but the status could not be
            # stored; recovery will deliver it again.
            logger.error(
                "task_status_persist_failed",
                extra={"task.id": task_id, "error.message": str(e)},
            )
            return

        logger.info(
            "task_delivered" if error is None else "task_failed",
            extra={
                "task.id": task_id,
                "task.status": task.status.value,
                "task.retry_count": task.retry_count,
            },
        )
