"""Scheduling errors.

Raised synchronously to callers of the lifecycle API:
- ValidationError: bad input, never persisted
- NotFoundError: unknown task id
- ImmutableStateError: operation not allowed in the task's current status

Never raised to callers:
- DeliveryError: recorded on the task record at fire time

Fatal at startup:
- PersistenceError: the task store could not be reached
"""


class HeraldError(Exception):
    """Base class for Herald errors."""


class SchedulingError(HeraldError):
    """Base class for scheduling errors."""


class ValidationError(SchedulingError):
    """Request failed validation."""


class NotFoundError(SchedulingError):
    """No task with the given id."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Scheduled message not found: {task_id}")
        self.task_id = task_id


class ImmutableStateError(SchedulingError):
    """Operation not allowed for the task's current status."""


class DeliveryError(SchedulingError):
    """The delivery action failed."""


class PersistenceError(SchedulingError):
    """The task store failed."""
