"""Scheduling types.

Public types:
- ScheduledTask: A durable scheduled message delivery request
- TaskStatus, RecipientType, Priority: Closed value sets for task fields
- TaskMetadata: Free-form provenance carried on a task
- Clock: Callable returning the current aware UTC time
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from enum import StrEnum
from typing import Any
from zoneinfo import ZoneInfo

from herald.scheduling.errors import ValidationError

MAX_RETRIES = 3
MAX_CONTENT_LENGTH = 1000

# One- or two-digit hour, two-digit minute; "9:05" and "09:05" are both valid
TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskStatus(StrEnum):
    """Allowed task statuses."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class RecipientType(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    INTERNAL = "internal"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass
class TaskMetadata:
    """Where a task came from. Not used by scheduling."""

    source: str | None = None
    campaign_id: str | None = None
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "campaign_id": self.campaign_id,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TaskMetadata:
        if not data:
            return cls()
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise ValidationError("metadata.tags must be a list of strings")
        return cls(
            source=_clean_optional(data.get("source")),
            campaign_id=_clean_optional(
                data.get("campaign_id", data.get("campaignId"))
            ),
            tags=[str(tag).strip() for tag in tags if str(tag).strip()],
        )


@dataclass
class ScheduledTask:
    """A single scheduled message delivery request."""

    id: str
    content: str
    scheduled_date: date
    scheduled_time: str
    fire_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    recipient: str | None = None
    recipient_type: RecipientType = RecipientType.INTERNAL
    priority: Priority = Priority.MEDIUM
    retry_count: int = 0
    sent_at: datetime | None = None
    error_message: str | None = None
    metadata: TaskMetadata = field(default_factory=TaskMetadata)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.status == TaskStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status == TaskStatus.SENT

    def is_due(self, now: datetime) -> bool:
        return self.is_pending and self.fire_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "scheduled_date": self.scheduled_date.isoformat(),
            "scheduled_time": self.scheduled_time,
            "fire_at": self.fire_at.isoformat(),
            "status": self.status.value,
            "recipient": self.recipient,
            "recipient_type": self.recipient_type.value,
            "priority": self.priority.value,
            "retry_count": self.retry_count,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "error_message": self.error_message,
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Field parsing and validation
# ---------------------------------------------------------------------------


def parse_time(value: Any) -> str:
    """Validate an HH:MM 24-hour time and return it zero-padded."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("time is required")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValidationError("Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def parse_date(value: Any) -> date:
    """Validate a calendar date given as a date or an ISO YYYY-MM-DD string.

    A full ISO timestamp is accepted and its date part used.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("date is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError("Invalid date format") from None


def parse_content(value: Any) -> str:
    if value is None:
        raise ValidationError("message is required")
    text = str(value).strip()
    if not text:
        raise ValidationError("message is required")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Message cannot exceed {MAX_CONTENT_LENGTH} characters"
        )
    return text


def parse_enum[E: StrEnum](enum_type: type[E], value: Any, name: str) -> E:
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ValidationError(f"{name} must be one of: {allowed}") from None


def fire_instant(scheduled_date: date, scheduled_time: str, zone: ZoneInfo) -> datetime:
    """Combine a date and HH:MM time in `zone` into an aware UTC instant."""
    hours, minutes = scheduled_time.split(":")
    local = datetime.combine(
        scheduled_date, time(int(hours), int(minutes)), tzinfo=zone
    )
    return local.astimezone(UTC)


def _clean_optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
