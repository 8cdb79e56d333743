"""Request and response bodies for the scheduled message API.

Field validation is left to the task manager so every entry point reports
the same messages; these models only shape the JSON.
"""

from datetime import date, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from herald.scheduling.types import ScheduledTask


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageCreate(CamelModel):
    """Body of POST /api/scheduled-messages."""

    message: Any = None
    day: Any = Field(default=None, validation_alias=AliasChoices("day", "scheduledDay"))
    time: Any = Field(
        default=None, validation_alias=AliasChoices("time", "scheduledTime")
    )
    recipient: str | None = None
    recipient_type: str | None = None
    priority: str | None = None
    metadata: dict[str, Any] | None = None


class MessageUpdate(CamelModel):
    """Body of PUT /api/scheduled-messages/{id}. Only sent fields change."""

    message: Any = None
    day: Any = Field(default=None, validation_alias=AliasChoices("day", "scheduledDay"))
    time: Any = Field(
        default=None, validation_alias=AliasChoices("time", "scheduledTime")
    )
    recipient: str | None = None
    recipient_type: str | None = None
    priority: str | None = None
    metadata: dict[str, Any] | None = None

    def to_patch(self) -> dict[str, Any]:
        """Translate the fields present in the request to a manager patch."""
        names = {
            "message": "content",
            "day": "scheduled_date",
            "time": "scheduled_time",
            "recipient": "recipient",
            "recipient_type": "recipient_type",
            "priority": "priority",
            "metadata": "metadata",
        }
        return {
            names[field]: getattr(self, field)
            for field in self.model_fields_set
            if field in names
        }


class MessageRetry(CamelModel):
    day: Any = Field(default=None, validation_alias=AliasChoices("day", "scheduledDay"))
    time: Any = Field(
        default=None, validation_alias=AliasChoices("time", "scheduledTime")
    )


class MetadataOut(CamelModel):
    source: str | None = None
    campaign_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class ScheduledMessageOut(CamelModel):
    id: str
    message: str
    scheduled_day: date
    scheduled_time: str
    fire_at: datetime
    status: str
    recipient: str | None
    recipient_type: str
    priority: str
    retry_count: int
    sent_at: datetime | None
    error_message: str | None
    metadata: MetadataOut
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: ScheduledTask) -> "ScheduledMessageOut":
        return cls(
            id=task.id,
            message=task.content,
            scheduled_day=task.scheduled_date,
            scheduled_time=task.scheduled_time,
            fire_at=task.fire_at,
            status=task.status.value,
            recipient=task.recipient,
            recipient_type=task.recipient_type.value,
            priority=task.priority.value,
            retry_count=task.retry_count,
            sent_at=task.sent_at,
            error_message=task.error_message,
            metadata=MetadataOut(
                source=task.metadata.source,
                campaign_id=task.metadata.campaign_id,
                tags=task.metadata.tags,
            ),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


def serialize(task: ScheduledTask) -> dict[str, Any]:
    return ScheduledMessageOut.from_task(task).model_dump(mode="json", by_alias=True)
