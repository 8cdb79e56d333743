"""Scheduled message routes."""

import logging
from typing import Any

from fastapi import APIRouter, Query, Request, status

from herald.scheduling import TaskManager
from herald.server.schemas import MessageCreate, MessageRetry, MessageUpdate, serialize

router = APIRouter()
logger = logging.getLogger(__name__)


def get_manager(request: Request) -> TaskManager:
    return request.app.state.manager


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_message(body: MessageCreate, request: Request) -> dict[str, Any]:
    """Schedule a new message."""
    task = await get_manager(request).create(
        content=body.message,
        date=body.day,
        time=body.time,
        recipient=body.recipient,
        recipient_type=body.recipient_type,
        priority=body.priority,
        metadata=body.metadata,
    )
    return {
        "success": True,
        "data": serialize(task),
        "message": "Message scheduled successfully",
    }


@router.get("")
async def list_messages(
    request: Request,
    page: int = Query(1),
    limit: int = Query(10),
    status_filter: str | None = Query(None, alias="status"),
    priority: str | None = Query(None),
    recipient_type: str | None = Query(None, alias="recipientType"),
) -> dict[str, Any]:
    """List scheduled messages, earliest fire instant first."""
    result = await get_manager(request).list(
        status=status_filter,
        priority=priority,
        recipient_type=recipient_type,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "data": [serialize(task) for task in result.items],
        "pagination": {
            "currentPage": result.page,
            "totalPages": result.total_pages,
            "totalItems": result.total,
            "itemsPerPage": result.limit,
        },
    }


@router.get("/pending")
async def list_pending(request: Request) -> dict[str, Any]:
    """Pending messages whose fire instant has passed."""
    tasks = await get_manager(request).list_due()
    return {
        "success": True,
        "data": [serialize(task) for task in tasks],
        "count": len(tasks),
    }


@router.get("/{task_id}")
async def get_message(task_id: str, request: Request) -> dict[str, Any]:
    task = await get_manager(request).get(task_id)
    return {"success": True, "data": serialize(task)}


@router.put("/{task_id}")
async def update_message(
    task_id: str, body: MessageUpdate, request: Request
) -> dict[str, Any]:
    """Edit a message that has not been sent yet."""
    task = await get_manager(request).update(task_id, body.to_patch())
    return {
        "success": True,
        "data": serialize(task),
        "message": "Scheduled message updated successfully",
    }


@router.delete("/{task_id}")
async def delete_message(task_id: str, request: Request) -> dict[str, Any]:
    """Cancel a message that has not been sent yet."""
    await get_manager(request).cancel(task_id)
    return {"success": True, "message": "Scheduled message deleted successfully"}


@router.post("/{task_id}/retry")
async def retry_message(
    task_id: str, request: Request, body: MessageRetry | None = None
) -> dict[str, Any]:
    """Re-queue a failed message, optionally at a new date and time."""
    body = body or MessageRetry()
    task = await get_manager(request).retry(task_id, date=body.day, time=body.time)
    return {
        "success": True,
        "data": serialize(task),
        "message": "Scheduled message queued for retry",
    }
