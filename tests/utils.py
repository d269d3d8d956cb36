"""Test helpers shared across modules."""

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import func, select

from app.contracts.clients.publisher import EventPublisher
from app.infra.database import models
from app.schemas.outbox import OutboxDTO, OutboxPublishResult


class FakePublisher(EventPublisher):
    """
    In-memory broker.

    `fail` decides per record whether the publish fails. Delivered records
    are kept by id, so redeliveries collapse like on an idempotent consumer.
    """

    def __init__(self, fail: Callable[[OutboxDTO], bool] | None = None) -> None:
        self.fail = fail or (lambda dto: False)
        self.calls: list[list[OutboxDTO]] = []
        self.sent: list[UUID] = []
        self.delivered: dict[UUID, OutboxDTO] = {}

    async def publish_batch(self, dtos: list[OutboxDTO]) -> list[OutboxPublishResult]:
        self.calls.append(list(dtos))

        results = []
        for dto in dtos:
            if self.fail(dto):
                results.append(
                    OutboxPublishResult(
                        record=dto, success=False, error="broker unavailable"
                    )
                )
                continue

            self.sent.append(dto.id)
            self.delivered.setdefault(dto.id, dto)
            results.append(OutboxPublishResult(record=dto, success=True, error=None))
        return results


async def create_user(sessionmaker, **fields) -> models.User:
    fields.setdefault("first_name", "Ada")
    fields.setdefault("last_name", "Lovelace")
    user = models.User(id=uuid4(), version=0, **fields)
    async with sessionmaker() as session:
        session.add(user)
        await session.commit()
    return user


async def fetch_outbox(sessionmaker) -> list[models.Outbox]:
    async with sessionmaker() as session:
        rows = await session.scalars(
            select(models.Outbox).order_by(
                models.Outbox.aggregate_id, models.Outbox.sequence
            )
        )
        return list(rows)


async def count_rows(sessionmaker, model) -> int:
    async with sessionmaker() as session:
        return await session.scalar(select(func.count()).select_from(model)) or 0


async def fetch_user(sessionmaker, user_id: UUID) -> models.User | None:
    async with sessionmaker() as session:
        return await session.get(models.User, user_id)
