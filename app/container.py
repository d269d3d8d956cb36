from typing import Awaitable, TypeVar

from dependency_injector import containers, providers
from faststream.kafka import KafkaBroker
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.infra.database.uows.activity import PgActivityUnitOfWork
from app.infra.database.uows.outbox import PgOutboxUnitOfWork
from app.infra.database.uows.profile import PgProfileUnitOfWork
from app.infra.kafka.broker import get_kafka_broker
from app.infra.kafka.publisher import KafkaOutboxPublisher
from app.infra.logging import logger
from app.services.activity import ActivityService
from app.services.outbox import OutboxAdminService, OutboxRecorder, OutboxService
from app.services.profile import ProfileService

ResourceT = TypeVar("ResourceT")


class EventsResource(providers.Resource[ResourceT]):
    pass


class OutboxResource(providers.Resource[ResourceT]):
    pass


class Container(containers.DeclarativeContainer):
    config = providers.Configuration()
    logger = providers.Object(logger)

    plain_engine = providers.Singleton(
        create_async_engine,
        config.postgres.dsn,
        connect_args=providers.Dict(
            server_settings=providers.Dict(search_path=config.postgres.sql_schema)
        ),
        pool_pre_ping=False,
        pool_recycle=3600,
        isolation_level="AUTOCOMMIT",
    )
    tx_engine = providers.Singleton(
        create_async_engine,
        config.postgres.dsn,
        connect_args=providers.Dict(
            server_settings=providers.Dict(search_path=config.postgres.sql_schema)
        ),
        pool_pre_ping=False,
        pool_recycle=3600,
    )
    plain_sessionmaker = providers.Singleton(
        async_sessionmaker[AsyncSession], plain_engine, expire_on_commit=False
    )
    tx_sessionmaker = providers.Singleton(
        async_sessionmaker[AsyncSession], tx_engine, expire_on_commit=False
    )

    # Both resource kinds hand out the same broker type; the entrypoint
    # decides which kind it initializes.
    outbox_kafka_broker = OutboxResource[Awaitable[KafkaBroker]](
        get_kafka_broker,  # type: ignore
        config.kafka.bootstrap_servers,
        logger=logger,
    )
    events_kafka_broker = EventsResource[Awaitable[KafkaBroker]](
        get_kafka_broker,  # type: ignore
        config.kafka.bootstrap_servers,
        logger=logger,
    )

    outbox_publisher = providers.Singleton(
        KafkaOutboxPublisher,
        outbox_kafka_broker,
        logger=logger,
        timeout=config.outbox.publish_timeout,
    )

    outbox_uow = providers.Factory(
        PgOutboxUnitOfWork,
        plain_sessionmaker=plain_sessionmaker,
        tx_sessionmaker=tx_sessionmaker,
    )
    profile_uow = providers.Factory(
        PgProfileUnitOfWork,
        plain_sessionmaker=plain_sessionmaker,
        tx_sessionmaker=tx_sessionmaker,
    )
    activity_uow = providers.Factory(
        PgActivityUnitOfWork,
        plain_sessionmaker=plain_sessionmaker,
        tx_sessionmaker=tx_sessionmaker,
    )

    outbox_recorder = providers.Singleton(
        OutboxRecorder,
        logger=logger,
        default_topic=config.kafka.profile_topic,
    )
    profile_service = providers.Factory(
        ProfileService, profile_uow, outbox_recorder, logger=logger
    )
    activity_service = providers.Factory(ActivityService, activity_uow, logger=logger)
    outbox_service = providers.Factory(
        OutboxService,
        outbox_uow,
        outbox_publisher,
        logger=logger,
        worker_id=config.outbox.worker_id,
        batch=config.outbox.batch,
        max_publish_attempts=config.outbox.max_attempts,
        backoff_base=config.outbox.backoff_base,
        backoff_max=config.outbox.backoff_max,
        claim_timeout=config.outbox.claim_timeout,
    )
    outbox_admin_service = providers.Factory(
        OutboxAdminService, outbox_uow, logger=logger
    )
