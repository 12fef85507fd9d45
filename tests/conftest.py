"""
Pytest configuration and fixtures for Tollgate tests.
"""
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from tollgate.container import Services, build_services
from tollgate.core.config import Settings
from tollgate.db.models import Credential
from tollgate.db.session import Database
from tollgate.utils.datetime import to_timestamp

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
PASSWORD = "correct horse battery staple"


class FrozenClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def timestamp(self) -> float:
        return to_timestamp(self.now)


def make_settings(db_path: Path, **overrides: Any) -> Settings:
    values = dict(
        JWT_SECRET=TEST_SECRET,
        DATABASE_URL=f"sqlite+aiosqlite:///{db_path}",
        PASSWORD_HASH_ROUNDS=4,
        SWEEP_INTERVAL_SECONDS=0,
        STORAGE_TIMEOUT_SECONDS=10.0,
        RATE_LIMIT_ENABLED=False,
    )
    values.update(overrides)
    return Settings(**values)


async def insert_user(
    database: Database, password_hash: str, email: str = "alice@example.com", **fields: Any
) -> Credential:
    credential = Credential(email=email, password_hash=password_hash, **fields)
    async with database.get_session() as session:
        session.add(credential)
    return credential


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def settings_factory(tmp_path: Path) -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        return make_settings(tmp_path / "tollgate.db", **overrides)
    return factory


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    return settings_factory()


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    db = Database(settings.DATABASE_URL)
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def services(settings: Settings, database: Database, clock: FrozenClock) -> AsyncGenerator[Services, None]:
    built = build_services(settings, database=database, clock=clock)
    yield built
    await built.writer.drain()
    await built.bucket_store.close()


@pytest.fixture
def make_user(services: Services) -> Callable[..., Awaitable[Credential]]:
    """Create a user with ``PASSWORD`` unless another password is given."""
    async def factory(email: str = "alice@example.com", password: str = PASSWORD, **fields: Any) -> Credential:
        return await insert_user(services.database, services.hasher.hash(password), email, **fields)
    return factory
