"""Task record persistence.

TaskStore is the contract the scheduler depends on; SQLTaskStore implements
it on the async SQLAlchemy database. Every database failure surfaces as
PersistenceError.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from herald.db.models import ScheduledTaskRow
from herald.scheduling.errors import NotFoundError, PersistenceError
from herald.scheduling.types import (
    Priority,
    RecipientType,
    ScheduledTask,
    TaskMetadata,
    TaskStatus,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from herald.db import Database

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Durable storage for scheduled task records, keyed by id."""

    async def add(self, task: ScheduledTask) -> None: ...

    async def get(self, task_id: str) -> ScheduledTask | None: ...

    async def update(self, task: ScheduledTask) -> None: ...

    async def delete(self, task_id: str) -> bool: ...

    async def find(
        self,
        *,
        status: TaskStatus | None = None,
        fire_after: datetime | None = None,
        fire_before: datetime | None = None,
    ) -> list[ScheduledTask]: ...

    async def page(
        self,
        *,
        status: TaskStatus | None = None,
        priority: Priority | None = None,
        recipient_type: RecipientType | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ScheduledTask], int]: ...

    async def count_by_status(self) -> dict[TaskStatus, int]: ...


def task_to_row(task: ScheduledTask, row: ScheduledTaskRow | None = None) -> ScheduledTaskRow:
    row = row or ScheduledTaskRow(id=task.id)
    row.content = task.content
    row.scheduled_date = task.scheduled_date
    row.scheduled_time = task.scheduled_time
    row.fire_at = task.fire_at
    row.status = task.status.value
    row.recipient = task.recipient
    row.recipient_type = task.recipient_type.value
    row.priority = task.priority.value
    row.retry_count = task.retry_count
    row.sent_at = task.sent_at
    row.error_message = task.error_message
    row.metadata_ = task.metadata.to_dict()
    row.created_at = task.created_at
    row.updated_at = task.updated_at
    return row


def row_to_task(row: ScheduledTaskRow) -> ScheduledTask:
    return ScheduledTask(
        id=row.id,
        content=row.content,
        scheduled_date=row.scheduled_date,
        scheduled_time=row.scheduled_time,
        fire_at=row.fire_at,
        status=TaskStatus(row.status),
        recipient=row.recipient,
        recipient_type=RecipientType(row.recipient_type),
        priority=Priority(row.priority),
        retry_count=row.retry_count,
        sent_at=row.sent_at,
        error_message=row.error_message,
        metadata=TaskMetadata.from_dict(row.metadata_),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLTaskStore:
    """TaskStore backed by the `scheduled_tasks` table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._database.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.warning(
                "task_store_error",
                extra={"store.operation": operation, "error.message": str(e)},
            )
            raise PersistenceError(f"Task store {operation} failed: {e}") from e

    async def add(self, task: ScheduledTask) -> None:
        async with self._session("add") as session:
            session.add(task_to_row(task))

    async def get(self, task_id: str) -> ScheduledTask | None:
        async with self._session("get") as session:
            row = await session.get(ScheduledTaskRow, task_id)
            return row_to_task(row) if row else None

    async def update(self, task: ScheduledTask) -> None:
        async with self._session("update") as session:
            row = await session.get(ScheduledTaskRow, task.id)
            if row is None:
                raise NotFoundError(task.id)
            task_to_row(task, row)

    async def delete(self, task_id: str) -> bool:
        async with self._session("delete") as session:
            result = await session.execute(
                delete(ScheduledTaskRow).where(ScheduledTaskRow.id == task_id)
            )
            return bool(result.rowcount)

    async def find(
        self,
        *,
        status: TaskStatus | None = None,
        fire_after: datetime | None = None,
        fire_before: datetime | None = None,
    ) -> list[ScheduledTask]:
        """Return tasks matching all given filters, earliest fire instant first.

        Both bounds are inclusive.
        """
        stmt = select(ScheduledTaskRow).order_by(
            ScheduledTaskRow.fire_at, ScheduledTaskRow.created_at
        )
        if status is not None:
            stmt = stmt.where(ScheduledTaskRow.status == status.value)
        if fire_after is not None:
            stmt = stmt.where(ScheduledTaskRow.fire_at >= fire_after)
        if fire_before is not None:
            stmt = stmt.where(ScheduledTaskRow.fire_at <= fire_before)

        async with self._session("find") as session:
            result = await session.execute(stmt)
            return [row_to_task(row) for row in result.scalars()]

    async def page(
        self,
        *,
        status: TaskStatus | None = None,
        priority: Priority | None = None,
        recipient_type: RecipientType | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[ScheduledTask], int]:
        conditions = []
        if status is not None:
            conditions.append(ScheduledTaskRow.status == status.value)
        if priority is not None:
            conditions.append(ScheduledTaskRow.priority == priority.value)
        if recipient_type is not None:
            conditions.append(ScheduledTaskRow.recipient_type == recipient_type.value)

        stmt = (
            select(ScheduledTaskRow)
            .where(*conditions)
            .order_by(ScheduledTaskRow.fire_at, ScheduledTaskRow.created_at)
            .offset(offset)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(ScheduledTaskRow).where(
            *conditions
        )

        async with self._session("page") as session:
            total = (await session.execute(count_stmt)).scalar_one()
            result = await session.execute(stmt)
            return [row_to_task(row) for row in result.scalars()], total

    async def count_by_status(self) -> dict[TaskStatus, int]:
        stmt = select(ScheduledTaskRow.status, func.count()).group_by(
            ScheduledTaskRow.status
        )
        async with self._session("count") as session:
            result = await session.execute(stmt)
            counts = {status: 0 for status in TaskStatus}
            for status, count in result.all():
                counts[TaskStatus(status)] = count
            return counts
