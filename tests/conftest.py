"""Shared fixtures: in-memory database, fake clock, mocked delivery."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from phone_verify.database.session_store import SqlSessionStore
from phone_verify.domain import DeliveryResult
from phone_verify.models.account import Base
from phone_verify.models import otp_session as _otp_session  # noqa: F401
from phone_verify.services.background import BackgroundTasks
from phone_verify.services.codes import CodeHasher
from phone_verify.services.dispatcher import DeliveryDispatcher
from phone_verify.services.identity import LocalIdentityProvider

PHONE = "+2348100000000"
OTHER_PHONE = "+2348111111111"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 17, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


# ── In-memory test database ─────────────────────────────
@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh database per test (file-backed so sessions get separate connections)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlSessionStore(session_factory)


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast.
    return CodeHasher(rounds=4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def tasks():
    runner = BackgroundTasks()
    yield runner
    await runner.drain()


@pytest.fixture
def dispatcher():
    """Mocked dispatcher — never actually sends messages."""
    mock = AsyncMock(spec=DeliveryDispatcher)
    mock.send.return_value = DeliveryResult(success=True, correlation_id="SM123456789")
    return mock


def sent_code(dispatcher) -> str:
    """The plaintext code handed to the mocked dispatcher on its last call."""
    return dispatcher.send.call_args.args[1]


@pytest.fixture
def identity(session_factory, hasher, clock):
    return LocalIdentityProvider(
        session_factory,
        hasher,
        secret="test-secret",
        algorithm="HS256",
        ttl_seconds=3600,
        clock=clock,
    )
