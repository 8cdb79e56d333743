"""Delivery actions invoked when a task fires.

A deliverer is an async callable taking the task. It returns normally on
success and raises DeliveryError on failure; any other exception is
treated as a failure by the engine as well.
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from herald.scheduling.errors import DeliveryError
from herald.scheduling.types import RecipientType, ScheduledTask

if TYPE_CHECKING:
    from herald.config.models import DeliveryConfig

logger = logging.getLogger(__name__)


class Deliverer(Protocol):
    """Async delivery action."""

    async def __call__(self, task: ScheduledTask) -> None: ...


class LogDeliverer:
    """Internal delivery: the message is written to the log."""

    async def __call__(self, task: ScheduledTask) -> None:
        logger.info(
            "message_delivered",
            extra={
                "task.id": task.id,
                "delivery.recipient": task.recipient,
                "delivery.recipient_type": task.recipient_type.value,
                "delivery.content_preview": task.content[:50],
            },
        )


class WebhookDeliverer:
    """POSTs the task as JSON to an HTTP endpoint.

    Any transport error or non-2xx response is a DeliveryError.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._token = token
        self._transport = transport

    def _payload(self, task: ScheduledTask) -> dict[str, Any]:
        return {
            "id": task.id,
            "content": task.content,
            "recipient": task.recipient,
            "recipient_type": task.recipient_type.value,
            "priority": task.priority.value,
            "fire_at": task.fire_at.isoformat(),
            "metadata": task.metadata.to_dict(),
        }

    async def __call__(self, task: ScheduledTask) -> None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._url, json=self._payload(task), headers=headers
                )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Webhook request failed: {e}") from e

        if response.is_error:
            raise DeliveryError(
                f"Webhook returned HTTP {response.status_code}: {response.text[:200]}"
            )


class DeliveryRouter:
    """Dispatches to a deliverer chosen by the task's recipient type."""

    def __init__(
        self,
        default: Deliverer,
        routes: Mapping[RecipientType, Deliverer] | None = None,
    ) -> None:
        self._default = default
        self._routes = dict(routes or {})

    def resolve(self, recipient_type: RecipientType) -> Deliverer:
        return self._routes.get(recipient_type, self._default)

    async def __call__(self, task: ScheduledTask) -> None:
        await self.resolve(task.recipient_type)(task)


def create_deliverer(config: "DeliveryConfig") -> DeliveryRouter:
    """Build the delivery router described by `[delivery]` config."""
    available: dict[str, Deliverer] = {"log": LogDeliverer()}
    if config.webhook_url:
        available["webhook"] = WebhookDeliverer(
            config.webhook_url,
            timeout=config.webhook_timeout,
            token=config.webhook_token.get_secret_value()
            if config.webhook_token
            else None,
        )

    routes = {
        RecipientType(recipient_type): available[name]
        for recipient_type, name in config.routes.items()
    }
    return DeliveryRouter(available[config.default], routes)
