"""Scheduling subsystem: durable one-shot message delivery.

Public API:
- TaskManager: Lifecycle operations (create, update, cancel, retry, list)
- SchedulerEngine: Arms and fires one-shot timers for pending tasks
- TimerRegistry: Process-local map of task id to live timer
- SQLTaskStore: TaskStore backed by the scheduled_tasks table
- recover_pending: Rebuilds timers from the store on startup

Types:
- ScheduledTask: A single scheduled message delivery request
- TaskStatus, RecipientType, Priority: Closed value sets for task fields
- Deliverer: Async callback invoked when a task fires
"""

from herald.scheduling.delivery import (
    Deliverer,
    DeliveryRouter,
    LogDeliverer,
    WebhookDeliverer,
    create_deliverer,
)
from herald.scheduling.engine import SchedulerEngine
from herald.scheduling.errors import (
    DeliveryError,
    HeraldError,
    ImmutableStateError,
    NotFoundError,
    PersistenceError,
    SchedulingError,
    ValidationError,
)
from herald.scheduling.manager import TaskManager, TaskPage
from herald.scheduling.recovery import RecoveryConfig, RecoveryReport, recover_pending
from herald.scheduling.registry import Timer, TimerRegistry
from herald.scheduling.store import SQLTaskStore, TaskStore
from herald.scheduling.types import (
    Priority,
    RecipientType,
    ScheduledTask,
    TaskMetadata,
    TaskStatus,
)

__all__ = [
    "Deliverer",
    "DeliveryError",
    "DeliveryRouter",
    "HeraldError",
    "ImmutableStateError",
    "LogDeliverer",
    "NotFoundError",
    "PersistenceError",
    "Priority",
    "RecipientType",
    "RecoveryConfig",
    "RecoveryReport",
    "SQLTaskStore",
    "ScheduledTask",
    "SchedulerEngine",
    "SchedulingError",
    "TaskManager",
    "TaskMetadata",
    "TaskPage",
    "TaskStatus",
    "TaskStore",
    "Timer",
    "TimerRegistry",
    "ValidationError",
    "WebhookDeliverer",
    "recover_pending",
]
