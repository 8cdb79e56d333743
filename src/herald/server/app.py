"""FastAPI application for the Herald server."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from herald.scheduling import (
    Deliverer,
    ImmutableStateError,
    NotFoundError,
    PersistenceError,
    RecoveryConfig,
    SchedulerEngine,
    SQLTaskStore,
    TaskManager,
    ValidationError,
    create_deliverer,
    recover_pending,
)
from herald.scheduling.types import Clock, utc_now
from herald.server.routes import health, tasks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from herald.config import HeraldConfig
    from herald.db import Database

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ImmutableStateError, status.HTTP_400_BAD_REQUEST),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


class HeraldServer:
    """Main server application.

    Owns the database, the scheduler engine and the task manager, and
    wires their startup and shutdown into the FastAPI lifespan.
    """

    def __init__(
        self,
        database: "Database",
        config: "HeraldConfig",
        *,
        deliverer: Deliverer | None = None,
        clock: Clock = utc_now,
        create_schema: bool = False,
    ):
        self._database = database
        self._config = config
        self._create_schema = create_schema

        self._store = SQLTaskStore(database)
        self._engine = SchedulerEngine(
            self._store,
            deliverer or create_deliverer(config.delivery),
            zone=config.scheduler.zone,
            clock=clock,
            resolution=config.scheduler.timer_resolution,
        )
        self._manager = TaskManager(store=self._store, engine=self._engine)

        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self._app

    @property
    def manager(self) -> TaskManager:
        return self._manager

    @property
    def engine(self) -> SchedulerEngine:
        return self._engine

    def _create_app(self) -> FastAPI:
        """Create and configure the FastAPI app."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> "AsyncIterator[None]":
            # Startup
            logger.info("server_starting")
            await self._database.connect()
            try:
                if self._create_schema:
                    await self._database.create_all()
                # A PersistenceError here aborts startup
                await recover_pending(
                    self._store,
                    self._engine,
                    RecoveryConfig.from_scheduler_config(self._config.scheduler),
                )
            except Exception:
                await self._database.disconnect()
                raise

            yield

            # Shutdown
            logger.info("server_stopping")
            await self._engine.shutdown()
            await self._database.disconnect()

        app = FastAPI(
            title="Herald",
            description="Scheduled message dispatcher API",
            version="0.1.0",
            lifespan=lifespan,
        )

        # Store references in app state
        app.state.server = self
        app.state.database = self._database
        app.state.manager = self._manager

        # Include routes
        app.include_router(health.router, tags=["health"])
        app.include_router(
            tasks.router,
            prefix="/api/scheduled-messages",
            tags=["scheduled-messages"],
        )

        register_error_handlers(app)
        return app


def register_error_handlers(app: FastAPI) -> None:
    """Map scheduling errors onto the `{success: false, error}` envelope."""

    for error_type, status_code in ERROR_STATUS:

        async def handler(
            request: Request, exc: Exception, status_code: int = status_code
        ) -> JSONResponse:
            if status_code >= 500:
                logger.error(
                    "request_failed",
                    extra={
                        "http.path": request.url.path,
                        "error.type": type(exc).__name__,
                        "error.message": str(exc),
                    },
                )
            return JSONResponse(
                status_code=status_code,
                content={"success": False, "error": str(exc)},
            )

        app.add_exception_handler(error_type, handler)

    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": detail},
        )

    app.add_exception_handler(RequestValidationError, request_validation_handler)


def create_app(
    database: "Database",
    config: "HeraldConfig",
    *,
    deliverer: Deliverer | None = None,
    clock: Clock = utc_now,
    create_schema: bool = False,
) -> FastAPI:
    """Create the FastAPI application."""
    server = HeraldServer(
        database,
        config,
        deliverer=deliverer,
        clock=clock,
        create_schema=create_schema,
    )
    return server.app
