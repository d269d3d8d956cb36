"""Shared fixtures.

Every test gets its own SQLite file database built from the ORM metadata,
so repositories and units of work run against a real SQL engine. Broker
access is replaced by `FakePublisher`.
"""

import logging
import os

import pytest

# Settings are read on import of the app package.
os.environ.setdefault("ADMIN__USERNAME", "admin")
os.environ.setdefault("ADMIN__PASSWORD", "admin")
os.environ.setdefault("ADMIN__SECRET", "test-secret")

from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.contracts.clients.publisher import EventPublisher  # noqa: E402
from app.infra.database import models  # noqa: E402
from app.infra.database.uows.activity import PgActivityUnitOfWork  # noqa: E402
from app.infra.database.uows.outbox import PgOutboxUnitOfWork  # noqa: E402
from app.infra.database.uows.profile import PgProfileUnitOfWork  # noqa: E402
from app.services.activity import ActivityService  # noqa: E402
from app.services.outbox import (  # noqa: E402
    OutboxAdminService,
    OutboxRecorder,
    OutboxService,
)
from app.services.profile import ProfileService  # noqa: E402
from tests.utils import FakePublisher, create_user  # noqa: E402


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("profile.tests")


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'profile.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sessionmaker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def outbox_uow(sessionmaker) -> PgOutboxUnitOfWork:
    return PgOutboxUnitOfWork(
        plain_sessionmaker=sessionmaker, tx_sessionmaker=sessionmaker
    )


@pytest.fixture
def profile_uow(sessionmaker) -> PgProfileUnitOfWork:
    return PgProfileUnitOfWork(
        plain_sessionmaker=sessionmaker, tx_sessionmaker=sessionmaker
    )


@pytest.fixture
def activity_uow(sessionmaker) -> PgActivityUnitOfWork:
    return PgActivityUnitOfWork(
        plain_sessionmaker=sessionmaker, tx_sessionmaker=sessionmaker
    )


@pytest.fixture
def recorder(logger) -> OutboxRecorder:
    return OutboxRecorder(logger=logger, default_topic="profile.events")


@pytest.fixture
def profile_service(profile_uow, recorder, logger) -> ProfileService:
    return ProfileService(profile_uow, recorder, logger=logger)


@pytest.fixture
def activity_service(activity_uow, logger) -> ActivityService:
    return ActivityService(activity_uow, logger=logger)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def make_dispatcher(outbox_uow, logger):
    def _make(publisher: EventPublisher, **kwargs) -> OutboxService:
        kwargs.setdefault("worker_id", "worker-1")
        kwargs.setdefault("backoff_base", 0.0)
        return OutboxService(outbox_uow, publisher, logger=logger, **kwargs)

    return _make


@pytest.fixture
def admin_service(outbox_uow, logger) -> OutboxAdminService:
    return OutboxAdminService(outbox_uow, logger=logger)


@pytest.fixture
async def user(sessionmaker) -> models.User:
    return await create_user(sessionmaker)
