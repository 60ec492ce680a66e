import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Test environment (must be set before backend.app is imported)
_TMP_DIR = Path(tempfile.mkdtemp(prefix="engage-tests-"))
os.environ["ENV"] = "test"
os.environ["DB_SCHEMA_CORE"] = ""
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'app.db'}"
os.environ["SCHEDULER_ENABLED_JOBS"] = ""
os.environ["ADMIN_API_KEY"] = ""

from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from backend.app.core.config_core import Settings  # noqa: E402
from backend.app.core.database_core import create_session_factory  # noqa: E402
from backend.app.models import Base  # noqa: E402
from backend.app.services.scheduler_service import SchedulerService  # noqa: E402

START = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)  # Monday


async def settle(rounds: int = 20) -> None:
    """Let pending callbacks and spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualSleeper:
    """Sleep replacement: timers block until the test wakes them up."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.pending: list = []
        self.delays: list = []

    async def __call__(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        entry = [delay, fut]
        self.delays.append(delay)
        self.pending.append(entry)
        try:
            await fut
        finally:
            self.pending = [e for e in self.pending if e is not entry]

    async def fire_next(self) -> float:
        """Advance the clock to the earliest sleeping timer and wake it."""
        await settle()
        assert self.pending, "no timer is sleeping"
        entry = min(self.pending, key=lambda e: e[0])
        delay, fut = entry
        self.clock.advance(delay)
        fut.set_result(None)
        await settle()
        return delay


class CallbackRecorder:
    """Job callback that counts calls and can block or fail on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.finished = 0
        self.cancelled = False
        self.fail = fail
        self.gate = None

    def block(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def __call__(self) -> None:
        self.calls += 1
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.fail:
            raise RuntimeError("boom")
        self.finished += 1


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, SCHEDULER_SHUTDOWN_GRACE_SEC=1.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def sleeper(clock) -> ManualSleeper:
    return ManualSleeper(clock)


@pytest.fixture
def callbacks() -> dict:
    return {
        "draw": CallbackRecorder(),
        "notifications": CallbackRecorder(),
        "cleanup": CallbackRecorder(),
    }


@pytest.fixture
async def scheduler(settings, clock, sleeper, callbacks):
    service = SchedulerService(callbacks=callbacks, settings=settings, clock=clock, sleep=sleeper)
    service.init()
    yield service
    await service.shutdown()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'draws.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()
