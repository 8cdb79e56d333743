"""Task status transitions.

    pending --deliver ok--> sent      (terminal)
    pending --deliver err-> failed    (retry_count + 1)
    failed  --reopen------> pending   (manual, only while retry_count < 3)

The scheduler never re-arms a failed task by itself.
"""

from datetime import datetime

from herald.scheduling.errors import ImmutableStateError
from herald.scheduling.types import MAX_RETRIES, ScheduledTask, TaskStatus

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.SENT, TaskStatus.FAILED}),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING}),
    TaskStatus.SENT: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TRANSITIONS[current]


def _transition(task: ScheduledTask, target: TaskStatus, now: datetime) -> None:
    if not can_transition(task.status, target):
        raise ImmutableStateError(
            f"Cannot move task {task.id} from {task.status} to {target}"
        )
    task.status = target
    task.updated_at = now


def ensure_mutable(task: ScheduledTask) -> None:
    """Raise if the task can no longer be changed."""
    if task.status == TaskStatus.SENT:
        raise ImmutableStateError("Cannot modify a message that has already been sent")


def mark_sent(task: ScheduledTask, now: datetime) -> ScheduledTask:
    _transition(task, TaskStatus.SENT, now)
    task.sent_at = now
    task.error_message = None
    return task


def mark_failed(task: ScheduledTask, error: str, now: datetime) -> ScheduledTask:
    _transition(task, TaskStatus.FAILED, now)
    task.error_message = error
    task.retry_count = min(task.retry_count + 1, MAX_RETRIES)
    return task


def can_retry(task: ScheduledTask) -> bool:
    return task.status == TaskStatus.FAILED and task.retry_count < MAX_RETRIES


def reopen(task: ScheduledTask, now: datetime) -> ScheduledTask:
    """Move a failed task back to pending for a manual retry."""
    if task.status != TaskStatus.FAILED:
        raise ImmutableStateError(
            f"Only failed messages can be retried (status is {task.status})"
        )
    if task.retry_count >= MAX_RETRIES:
        raise ImmutableStateError(
            f"Retry limit reached ({MAX_RETRIES}); manual intervention required"
        )
    _transition(task, TaskStatus.PENDING, now)
    return task
