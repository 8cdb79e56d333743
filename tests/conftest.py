"""Shared test fixtures and factories."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from herald.config.models import HeraldConfig
from herald.db.engine import Database
from herald.db.models import Base
from herald.scheduling.engine import SchedulerEngine
from herald.scheduling.errors import DeliveryError
from herald.scheduling.manager import TaskManager
from herald.scheduling.store import SQLTaskStore
from herald.scheduling.types import ScheduledTask, TaskStatus, fire_instant

# Every scheduling test starts at this instant unless it moves the clock
START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
TODAY = date(2026, 3, 1)

# Timer sleep slice used in tests; keeps fake-clock advances visible quickly
TEST_RESOLUTION = 0.01


# =============================================================================
# Clock and delivery doubles
# =============================================================================


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingDeliverer:
    """Deliverer that records calls, optionally failing or blocking."""

    def __init__(self) -> None:
        self.delivered: list[ScheduledTask] = []
        self.started: list[str] = []
        self.fail_with: str | None = None
        self.gate: asyncio.Event | None = None

    @property
    def ids(self) -> list[str]:
        return [task.id for task in self.delivered]

    async def __call__(self, task: ScheduledTask) -> None:
        self.started.append(task.id)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise DeliveryError(self.fail_with)
        self.delivered.append(task)


async def eventually(
    predicate: Callable[[], object],
    timeout: float = 2.0,
    interval: float = 0.01,
) -> None:
    """Wait until `predicate()` is truthy or fail after `timeout` seconds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


async def settle(seconds: float = 0.05) -> None:
    """Give armed timers a few slices to run."""
    await asyncio.sleep(seconds)


async def wait_for_status(
    store: SQLTaskStore,
    task_id: str,
    status: TaskStatus,
    timeout: float = 2.0,
) -> ScheduledTask:
    """Poll the store until the task reaches `status`."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        task = await store.get(task_id)
        if task is not None and task.status == status:
            return task
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"task {task_id} never reached {status}")
        await asyncio.sleep(0.01)


def make_task(
    task_id: str = "a1b2c3d4e5f6",
    *,
    scheduled_date: date = TODAY,
    scheduled_time: str = "12:05",
    status: TaskStatus = TaskStatus.PENDING,
    content: str = "Hello",
    **kwargs,
) -> ScheduledTask:
    """Build a task record with a UTC fire instant."""
    return ScheduledTask(
        id=task_id,
        content=content,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        fire_at=fire_instant(scheduled_date, scheduled_time, UTC),
        status=status,
        created_at=START,
        updated_at=START,
        **kwargs,
    )


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config_toml_content(tmp_path: Path) -> str:
    """Valid TOML config content."""
    return f"""
[database]
path = "{(tmp_path / "herald.db").as_posix()}"

[scheduler]
timezone = "America/New_York"
timer_resolution = 5

[delivery]
default = "log"

[server]
port = 9090
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture
def herald_config(tmp_path: Path) -> HeraldConfig:
    """Configuration pointing at a temporary database with fast timers."""
    return HeraldConfig.model_validate(
        {
            "database": {"path": tmp_path / "api.db"},
            "scheduler": {"timer_resolution": TEST_RESOLUTION},
        }
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db_path = tmp_path / "test.db"
    db = Database(database_path=db_path)
    await db.connect()

    # Create all tables
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.disconnect()


@pytest.fixture
def store(database: Database) -> SQLTaskStore:
    return SQLTaskStore(database)


# =============================================================================
# Scheduler Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deliverer() -> RecordingDeliverer:
    return RecordingDeliverer()


@pytest.fixture
async def engine(
    store: SQLTaskStore, deliverer: RecordingDeliverer, clock: FakeClock
) -> AsyncGenerator[SchedulerEngine, None]:
    engine = SchedulerEngine(
        store,
        deliverer,
        clock=clock,
        resolution=TEST_RESOLUTION,
    )
    yield engine
    if deliverer.gate is not None:
        deliverer.gate.set()
    await engine.shutdown(grace=1.0)


@pytest.fixture
def manager(store: SQLTaskStore, engine: SchedulerEngine) -> TaskManager:
    return TaskManager(store=store, engine=engine)


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture(autouse=True)
def herald_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HERALD_HOME at a temporary directory for every test."""
    from herald.config.paths import ENV_VAR, get_herald_home

    home = tmp_path / "herald-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("HERALD_DATABASE_URL", raising=False)
    monkeypatch.delenv("HERALD_WEBHOOK_TOKEN", raising=False)
    get_herald_home.cache_clear()
    yield home
    get_herald_home.cache_clear()
