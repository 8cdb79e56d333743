"""Startup recovery: rebuild the timer registry from the task store.

Run once the database is reachable and before the API serves requests.
Persistence failures are retried with exponential backoff; when attempts
run out the PersistenceError propagates so the process does not start
with an empty registry while pending tasks exist.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from herald.scheduling.engine import SchedulerEngine
from herald.scheduling.errors import PersistenceError
from herald.scheduling.store import TaskStore
from herald.scheduling.types import TaskStatus

if TYPE_CHECKING:
    from herald.config.models import SchedulerConfig

logger = logging.getLogger(__name__)


@dataclass
class RecoveryConfig:
    """Configuration for startup recovery."""

    # Pending tasks missed by more than this are left unarmed; None arms all
    lookback: timedelta | None = timedelta(hours=24)
    max_attempts: int = 5
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds

    @classmethod
    def from_scheduler_config(cls, config: "SchedulerConfig") -> "RecoveryConfig":
        hours = config.recovery_lookback_hours
        return cls(
            lookback=timedelta(hours=hours) if hours is not None else None,
            max_attempts=config.recovery_attempts,
            base_delay=config.recovery_base_delay,
        )


@dataclass
class RecoveryReport:
    """What a recovery pass did."""

    armed: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    attempts: int = 0


async def with_backoff[T](
    func: Callable[[], Awaitable[T]],
    config: RecoveryConfig,
    operation_name: str = "recovery",
) -> T:
    """Execute `func`, retrying PersistenceError with exponential backoff.

    Raises:
        PersistenceError: The last failure once `max_attempts` is reached.
    """
    for attempt in range(config.max_attempts):
        try:
            return await func()
        except PersistenceError as e:
            if attempt + 1 >= config.max_attempts:
                logger.error(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": config.max_attempts,
                        "error.message": str(e),
                    },
                )
                raise

            delay = min(config.base_delay * (2**attempt), config.max_delay)
            logger.warning(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_attempts,
                    "retry_delay_s": round(delay, 1),
                    "error.message": str(e),
                },
            )
            await asyncio.sleep(delay)

    raise PersistenceError(f"{operation_name}: no attempts configured")


async def recover_pending(
    store: TaskStore,
    engine: SchedulerEngine,
    config: RecoveryConfig | None = None,
) -> RecoveryReport:
    """Arm a timer for every recoverable pending task.

    Pending tasks whose fire instant has already passed are armed too and
    fire right away, unless they are older than the lookback window. Safe
    to call more than once: re-arming replaces a waiting timer and leaves
    an in-flight delivery alone.
    """
    config = config or RecoveryConfig()
    report = RecoveryReport()

    async def load():
        report.attempts += 1
        return await store.find(status=TaskStatus.PENDING)

    tasks = await with_backoff(load, config, "recover_pending")

    now = engine.clock()
    cutoff = now - config.lookback if config.lookback is not None else None

    for task in tasks:
        fire_at = task.fire_at
        if cutoff is not None and fire_at < cutoff:
            report.stale.append(task.id)
            logger.warning(
                "stale_task_skipped",
                extra={
                    "task.id": task.id,
                    "task.fire_at": fire_at.isoformat(),
                    "task.overdue_hours": round(
                        (now - fire_at).total_seconds() / 3600, 1
                    ),
                },
            )
            continue
        engine.arm(task)
        report.armed.append(task.id)

    logger.info(
        "recovery_complete",
        extra={
            "recovery.armed": len(report.armed),
            "recovery.stale": len(report.stale),
            "recovery.attempts": report.attempts,
        },
    )
    return report
