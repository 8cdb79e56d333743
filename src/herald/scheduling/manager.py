"""Task manager facade: the lifecycle operations behind the API and CLI.

Every mutation updates the durable record and the timer registry together.
Operations on the same task id are serialized so that, for example, a
cancel issued after an update can never leave a stray timer behind.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from builtins import list as builtin_list
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from herald.scheduling.engine import SchedulerEngine
from herald.scheduling.errors import ImmutableStateError, NotFoundError, ValidationError
from herald.scheduling.state import ensure_mutable, reopen
from herald.scheduling.store import TaskStore
from herald.scheduling.types import (
    Priority,
    RecipientType,
    ScheduledTask,
    TaskMetadata,
    TaskStatus,
    fire_instant,
    parse_content,
    parse_date,
    parse_enum,
    parse_time,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "content",
        "scheduled_date",
        "scheduled_time",
        "recipient",
        "recipient_type",
        "priority",
        "metadata",
    }
)
MAX_PAGE_SIZE = 100


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class TaskPage:
    """One page of a filtered task listing."""

    items: builtin_list[ScheduledTask]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


class TaskManager:
    """Async facade for scheduled task lifecycle operations."""

    def __init__(self, *, store: TaskStore, engine: SchedulerEngine) -> None:
        self._store = store
        self._engine = engine
        self._locks = KeyedLock()

    @property
    def engine(self) -> SchedulerEngine:
        return self._engine

    @property
    def store(self) -> TaskStore:
        return self._store

    def _now(self) -> datetime:
        return self._engine.clock()

    def _require_future(self, scheduled_date: date, scheduled_time: str) -> datetime:
        fire_at = fire_instant(scheduled_date, scheduled_time, self._engine.zone)
        if fire_at <= self._now():
            raise ValidationError("Scheduled date and time must be in the future")
        return fire_at

    async def _require_task(self, task_id: str) -> ScheduledTask:
        task = await self._store.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        content: Any,
        date: Any,
        time: Any,
        recipient: str | None = None,
        recipient_type: Any = None,
        priority: Any = None,
        metadata: Mapping[str, Any] | TaskMetadata | None = None,
    ) -> ScheduledTask:
        """Validate, persist and arm a new pending task."""
        text = parse_content(content)
        scheduled_date = parse_date(date)
        scheduled_time = parse_time(time)
        fire_at = self._require_future(scheduled_date, scheduled_time)

        now = self._now()
        task = ScheduledTask(
            id=uuid.uuid4().hex[:12],
            content=text,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            fire_at=fire_at,
            status=TaskStatus.PENDING,
            recipient=_clean_recipient(recipient),
            recipient_type=parse_enum(RecipientType, recipient_type, "recipientType")
            if recipient_type
            else RecipientType.INTERNAL,
            priority=parse_enum(Priority, priority, "priority")
            if priority
            else Priority.MEDIUM,
            metadata=_parse_metadata(metadata),
            created_at=now,
            updated_at=now,
        )

        async with self._locks(task.id):
            await self._store.add(task)
            self._engine.arm(task)

        logger.info(
            "task_created",
            extra={"task.id": task.id, "task.fire_at": fire_at.isoformat()},
        )
        return task

    async def update(self, task_id: str, patch: Mapping[str, Any]) -> ScheduledTask:
        """Apply `patch` to a task that has not been sent yet.

        The timer is disarmed first and re-armed when the task is still
        pending and either its schedule changed or it had a live timer. A
        task whose delivery is in flight cannot be modified.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if not patch:
            raise ValidationError("At least one updatable field must be provided")

        async with self._locks(task_id):
            task = await self._require_task(task_id)
            ensure_mutable(task)
            if self._engine.is_firing(task_id):
                raise ImmutableStateError(
                    "Cannot modify a message while its delivery is in progress"
                )

            updated = _apply_patch(task, patch)
            schedule_changed = (
                updated.scheduled_date != task.scheduled_date
                or updated.scheduled_time != task.scheduled_time
            )
            if schedule_changed:
                updated.fire_at = self._require_future(
                    updated.scheduled_date, updated.scheduled_time
                )
            updated.updated_at = self._now()

            was_armed = self._engine.disarm(task_id)
            try:
                await self._store.update(updated)
            except Exception:
                if was_armed and task.is_pending:
                    self._engine.arm(task)
                raise

            if updated.is_pending and (schedule_changed or was_armed):
                self._engine.arm(updated)

        logger.info(
            "task_updated",
            extra={
                "task.id": task_id,
                "task.fields": sorted(patch),
                "task.rescheduled": schedule_changed,
            },
        )
        return updated

    async def cancel(self, task_id: str) -> None:
        """Disarm and delete a task that has not been sent."""
        async with self._locks(task_id):
            task = await self._require_task(task_id)
            if task.status == TaskStatus.SENT:
                raise ImmutableStateError(
                    "Cannot cancel a message that has already been sent"
                )
            self._engine.disarm(task_id)
            if not await self._store.delete(task_id):
                raise NotFoundError(task_id)

        logger.info("task_cancelled", extra={"task.id": task_id})

    async def retry(
        self,
        task_id: str,
        *,
        date: Any = None,
        time: Any = None,
    ) -> ScheduledTask:
        """Manually re-queue a failed task.

        Without a new date/time the task fires immediately.
        """
        async with self._locks(task_id):
            task = await self._require_task(task_id)
            updated = replace(task, metadata=replace(task.metadata))

            if date is not None or time is not None:
                if date is not None:
                    updated.scheduled_date = parse_date(date)
                if time is not None:
                    updated.scheduled_time = parse_time(time)
                updated.fire_at = self._require_future(
                    updated.scheduled_date, updated.scheduled_time
                )

            reopen(updated, self._now())
            await self._store.update(updated)
            self._engine.arm(updated)

        logger.info(
            "task_retry_requested",
            extra={"task.id": task_id, "task.retry_count": updated.retry_count},
        )
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, task_id: str) -> ScheduledTask:
        return await self._require_task(task_id)

    async def list(
        self,
        *,
        status: Any = None,
        priority: Any = None,
        recipient_type: Any = None,
        page: int = 1,
        limit: int = 10,
    ) -> TaskPage:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        items, total = await self._store.page(
            status=parse_enum(TaskStatus, status, "status") if status else None,
            priority=parse_enum(Priority, priority, "priority") if priority else None,
            recipient_type=parse_enum(RecipientType, recipient_type, "recipientType")
            if recipient_type
            else None,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return TaskPage(items=items, page=page, limit=limit, total=total)

    async def list_due(self, now: datetime | None = None) -> builtin_list[ScheduledTask]:
        """Pending tasks whose fire instant is at or before `now`."""
        return await self._store.find(
            status=TaskStatus.PENDING,
            fire_before=now or self._now(),
        )

    async def stats(self) -> dict[str, int]:
        counts = await self._store.count_by_status()
        result = {status.value: count for status, count in counts.items()}
        result["total"] = sum(counts.values())
        result["armed"] = self._engine.armed_count
        return result


def _apply_patch(task: ScheduledTask, patch: Mapping[str, Any]) -> ScheduledTask:
    """Return a validated copy of `task` with `patch` applied."""
    updated = replace(task, metadata=replace(task.metadata))
    if "content" in patch:
        updated.content = parse_content(patch["content"])
    if "scheduled_date" in patch:
        updated.scheduled_date = parse_date(patch["scheduled_date"])
    if "scheduled_time" in patch:
        updated.scheduled_time = parse_time(patch["scheduled_time"])
    if "recipient" in patch:
        updated.recipient = _clean_recipient(patch["recipient"])
    if "recipient_type" in patch:
        updated.recipient_type = parse_enum(
            RecipientType, patch["recipient_type"], "recipientType"
        )
    if "priority" in patch:
        updated.priority = parse_enum(Priority, patch["priority"], "priority")
    if "metadata" in patch:
        updated.metadata = _parse_metadata(patch["metadata"])
    return updated


def _parse_metadata(value: Mapping[str, Any] | TaskMetadata | None) -> TaskMetadata:
    if isinstance(value, TaskMetadata):
        return value
    if value is not None and not isinstance(value, Mapping):
        raise ValidationError("metadata must be an object")
    return TaskMetadata.from_dict(dict(value) if value else None)


def _clean_recipient(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
