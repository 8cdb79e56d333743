"""Scheduled task management commands.

Writes go through the HTTP API of a running server so its scheduler arms
the timers. Without a server they go to the task store directly, and the
records are armed when the server next starts. Reads always use the store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import click
import typer

from herald.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    success,
    warning,
)

if TYPE_CHECKING:
    from herald.cli.client import ServerClient
    from herald.config import HeraldConfig
    from herald.scheduling import ScheduledTask, TaskManager

STATUS_STYLES = {
    "pending": "yellow",
    "sent": "green",
    "failed": "red",
}


def register(app: typer.Typer) -> None:
    """Register the tasks command."""

    @app.command()
    def tasks(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, due, show, create, cancel, retry"),
        ] = None,
        task_id: Annotated[
            str | None,
            typer.Option(
                "--id",
                "-i",
                help="Task ID for show, cancel and retry",
            ),
        ] = None,
        message: Annotated[
            str | None,
            typer.Option("--message", "-m", help="Message content for create"),
        ] = None,
        day: Annotated[
            str | None,
            typer.Option("--day", "-d", help="Date (YYYY-MM-DD) for create or retry"),
        ] = None,
        time: Annotated[
            str | None,
            typer.Option("--time", "-t", help="Time (HH:MM) for create or retry"),
        ] = None,
        recipient: Annotated[
            str | None,
            typer.Option("--recipient", help="Recipient for create"),
        ] = None,
        recipient_type: Annotated[
            str | None,
            typer.Option("--recipient-type", help="email, sms, push or internal"),
        ] = None,
        priority: Annotated[
            str | None,
            typer.Option("--priority", help="low, medium, high or urgent"),
        ] = None,
        status: Annotated[
            str | None,
            typer.Option("--status", "-s", help="Filter list by status"),
        ] = None,
        page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
        limit: Annotated[int, typer.Option("--limit", help="Page size")] = 20,
        force: Annotated[
            bool,
            typer.Option(
                "--force",
                "-f",
                help="Force action without confirmation",
            ),
        ] = False,
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Manage scheduled messages.

        Examples:
            herald tasks list --status pending
            herald tasks create -m "Standup" -d 2026-01-05 -t 09:30
            herald tasks cancel --id a1b2c3d4e5f6
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action == "list":
            _tasks_list(config_path, status, page, limit)

        elif action == "due":
            _tasks_due(config_path)

        elif action == "show":
            _tasks_show(config_path, _require_id(task_id, action))

        elif action == "create":
            _tasks_create(
                config_path,
                message=message,
                day=day,
                time=time,
                recipient=recipient,
                recipient_type=recipient_type,
                priority=priority,
            )

        elif action == "cancel":
            _tasks_cancel(config_path, _require_id(task_id, action), force)

        elif action == "retry":
            _tasks_retry(config_path, _require_id(task_id, action), day, time)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: list, due, show, create, cancel, retry")
            raise typer.Exit(1)


def _require_id(task_id: str | None, action: str) -> str:
    if task_id is None:
        error(f"--id is required for {action}")
        raise typer.Exit(1)
    return task_id


def _load_config(config_path: Path | None) -> HeraldConfig:
    from herald.config import load_config

    return load_config(config_path)


def _connect_server(config: HeraldConfig) -> ServerClient | None:
    from herald.cli.client import ServerClient

    return ServerClient.connect(config.server)


def _warn_not_armed(config: HeraldConfig) -> None:
    from herald.cli.client import server_url

    warning(
        f"No server reachable at {server_url(config.server)}; "
        "the task is armed when the server next starts"
    )


def _run_with_server[T](
    client: ServerClient, func: Callable[[ServerClient], T]
) -> T:
    """Run `func` against the running server and close the client."""
    from herald.scheduling import HeraldError

    try:
        with client:
            return func(client)
    except HeraldError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _run_with_manager[T](
    config: HeraldConfig,
    func: Callable[[TaskManager], Awaitable[T]],
) -> T:
    """Open the database, run `func` against a TaskManager, and close it.

    Used for reads, and for writes when no server is running.
    """
    from herald.db import Database
    from herald.scheduling import (
        HeraldError,
        SchedulerEngine,
        SQLTaskStore,
        TaskManager,
        create_deliverer,
    )

    async def run() -> T:
        database = Database(
            database_url=config.database.url,
            database_path=config.database.path,
        )
        await database.connect()
        store = SQLTaskStore(database)
        engine = SchedulerEngine(
            store,
            create_deliverer(config.delivery),
            zone=config.scheduler.zone,
            resolution=config.scheduler.timer_resolution,
        )
        try:
            return await func(TaskManager(store=store, engine=engine))
        finally:
            # Timers armed in this process are discarded; records stay pending
            await engine.shutdown(grace=0)
            await database.disconnect()

    try:
        return asyncio.run(run())
    except HeraldError as e:
        error(str(e))
        raise typer.Exit(1) from None


def _format_schedule(task: ScheduledTask) -> str:
    return f"{task.scheduled_date.isoformat()} {task.scheduled_time}"


def _format_status(task: ScheduledTask) -> str:
    style = STATUS_STYLES.get(task.status.value, "white")
    return f"[{style}]{task.status.value}[/{style}]"


def _truncate(text: str, width: int = 40) -> str:
    return text[:width] + "..." if len(text) > width else text


def _print_tasks(tasks: list[ScheduledTask], title: str | None = None) -> None:
    table = create_table(
        title,
        [
            ("ID", "dim"),
            ("Status", ""),
            ("Priority", ""),
            ("Type", ""),
            ("Recipient", ""),
            ("Scheduled", "cyan"),
            ("Retries", {"justify": "right"}),
            ("Message", ""),
        ],
    )
    for task in tasks:
        table.add_row(
            task.id,
            _format_status(task),
            task.priority.value,
            task.recipient_type.value,
            task.recipient or "[dim]-[/dim]",
            _format_schedule(task),
            str(task.retry_count),
            _truncate(task.content),
        )
    console.print(table)


def _tasks_list(
    config_path: Path | None, status: str | None, page: int, limit: int
) -> None:
    """List scheduled tasks."""
    result = _run_with_manager(
        _load_config(config_path),
        lambda manager: manager.list(status=status, page=page, limit=limit),
    )

    if not result.items:
        warning("No scheduled tasks found")
        return

    _print_tasks(result.items)
    dim(
        f"Page {result.page} of {result.total_pages} "
        f"({result.total} task(s), {result.limit} per page)"
    )


def _tasks_due(config_path: Path | None) -> None:
    """List pending tasks whose fire time has passed."""
    due = _run_with_manager(
        _load_config(config_path), lambda manager: manager.list_due()
    )

    if not due:
        success("No overdue tasks")
        return

    _print_tasks(due, title="Due tasks")
    dim(f"{len(due)} task(s) due")


def _tasks_show(config_path: Path | None, task_id: str) -> None:
    """Show a single task in full."""
    task = _run_with_manager(
        _load_config(config_path), lambda manager: manager.get(task_id)
    )

    table = create_table(None, [("Field", "cyan"), ("Value", "")])
    table.add_row("ID", task.id)
    table.add_row("Status", _format_status(task))
    table.add_row("Scheduled", _format_schedule(task))
    table.add_row("Fires at (UTC)", task.fire_at.isoformat())
    table.add_row("Recipient", task.recipient or "-")
    table.add_row("Recipient type", task.recipient_type.value)
    table.add_row("Priority", task.priority.value)
    table.add_row("Retries", str(task.retry_count))
    if task.sent_at:
        table.add_row("Sent at", task.sent_at.isoformat())
    if task.error_message:
        table.add_row("Error", f"[red]{task.error_message}[/red]")
    if task.metadata.source:
        table.add_row("Source", task.metadata.source)
    if task.metadata.campaign_id:
        table.add_row("Campaign", task.metadata.campaign_id)
    if task.metadata.tags:
        table.add_row("Tags", ", ".join(task.metadata.tags))
    table.add_row("Message", task.content)
    console.print(table)


def _tasks_create(
    config_path: Path | None,
    *,
    message: str | None,
    day: str | None,
    time: str | None,
    recipient: str | None,
    recipient_type: str | None,
    priority: str | None,
) -> None:
    """Create a new scheduled task."""
    config = _load_config(config_path)
    client = _connect_server(config)
    if client is not None:
        body = {
            "message": message,
            "day": day,
            "time": time,
            "recipient": recipient,
            "recipientType": recipient_type,
            "priority": priority,
            "metadata": {"source": "cli"},
        }
        data = _run_with_server(client, lambda server: server.create(body))
        success(
            f"Scheduled {data['id']} for {data['scheduledDay']} {data['scheduledTime']}"
        )
        return

    task = _run_with_manager(
        config,
        lambda manager: manager.create(
            content=message,
            date=day,
            time=time,
            recipient=recipient,
            recipient_type=recipient_type,
            priority=priority,
            metadata={"source": "cli"},
        ),
    )
    success(f"Scheduled {task.id} for {_format_schedule(task)}")
    _warn_not_armed(config)


def _tasks_cancel(config_path: Path | None, task_id: str, force: bool) -> None:
    """Cancel a task that has not been sent."""
    if not confirm_or_cancel(f"Cancel scheduled task {task_id}?", force):
        return
    config = _load_config(config_path)
    client = _connect_server(config)
    if client is not None:
        _run_with_server(client, lambda server: server.cancel(task_id))
    else:
        _run_with_manager(config, lambda manager: manager.cancel(task_id))
    success(f"Cancelled task {task_id}")


def _tasks_retry(
    config_path: Path | None, task_id: str, day: str | None, time: str | None
) -> None:
    """Re-queue a failed task."""
    config = _load_config(config_path)
    client = _connect_server(config)
    if client is not None:
        data = _run_with_server(
            client, lambda server: server.retry(task_id, day=day, time=time)
        )
        success(
            f"Task {data['id']} queued for retry at "
            f"{data['scheduledDay']} {data['scheduledTime']} "
            f"(attempt {data['retryCount'] + 1})"
        )
        return

    task = _run_with_manager(
        config,
        lambda manager: manager.retry(task_id, date=day, time=time),
    )
    success(
        f"Task {task.id} queued for retry at {_format_schedule(task)} "
        f"(attempt {task.retry_count + 1})"
    )
    _warn_not_armed(config)
