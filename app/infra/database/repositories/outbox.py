from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sentry_sdk import start_span
from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.orm import aliased

from app.contracts.repositories.outbox import OutboxRepository
from app.domains.outbox import BLOCKING_STATUSES, OutboxStatus
from app.infra.database.models import Outbox
from app.infra.database.repositories.base import PostgresRepository
from app.infra.utils.time import now_utc
from app.schemas.outbox import OutboxDTO


def _to_dto(row: Outbox) -> OutboxDTO:
    return OutboxDTO(
        id=row.id,
        aggregate_id=row.aggregate_id,
        sequence=row.sequence,
        event_type=row.event_type,
        topic=row.topic,
        payload=row.payload,
        correlation_id=row.correlation_id,
        status=row.status,
        attempts=row.attempts,
        last_error=row.last_error,
        created_at=row.created_at,
    )


class PgOutboxRepository(PostgresRepository, OutboxRepository):
    async def insert(
        self,
        *,
        id: UUID,
        aggregate_id: UUID,
        event_type: str,
        topic: str,
        payload: dict[str, Any],
        correlation_id: str,
    ) -> OutboxDTO | None:
        """
        Append a PENDING record inside the **current transaction**.

        The record gets the next per-aggregate `sequence`. Inserting an `id`
        that already exists is a no-op and returns the stored record. Returns
        `None` only if the record can not be read back.
        """
        with start_span(op="db", name="insert_outbox_record") as span:
            span.set_tag("outbox.id", str(id))
            span.set_tag("correlation_id", correlation_id)

            last_sequence = await self._session.scalar(
                select(func.max(Outbox.sequence)).where(
                    Outbox.aggregate_id == aggregate_id
                )
            )
            now = now_utc()

            stmt = (
                self._insert(Outbox)
                .values(
                    id=id,
                    aggregate_id=aggregate_id,
                    sequence=(last_sequence or 0) + 1,
                    event_type=event_type,
                    topic=topic,
                    payload=payload,
                    correlation_id=correlation_id,
                    status=OutboxStatus.PENDING,
                    attempts=0,
                    created_at=now,
                    next_attempt_at=now,
                )
                .on_conflict_do_nothing(index_elements=["id"])
            )
            await self._session.execute(stmt)

            return await self.get(id)

    async def get(self, outbox_id: UUID) -> OutboxDTO | None:
        with start_span(op="db", name="get_outbox_record") as span:
            span.set_tag("outbox.id", str(outbox_id))

            stmt = (
                select(Outbox)
                .where(Outbox.id == outbox_id)
                .execution_options(populate_existing=True)
            )
            row = await self._session.scalar(stmt)
            if row is None:
                return None
            return _to_dto(row)

    async def select_claimable(self, batch: int) -> list[UUID]:
        """
        Select ids of records ready for dispatch, oldest first.

        A record is claimable when it is PENDING, its `next_attempt_at` has
        passed and no earlier record of the same aggregate is still PENDING or
        IN_PROGRESS. Rows locked by other transactions are skipped.
        """
        with start_span(op="db", name="select_claimable_outbox") as span:
            earlier = aliased(Outbox)
            blocked = exists().where(
                and_(
                    earlier.aggregate_id == Outbox.aggregate_id,
                    earlier.sequence < Outbox.sequence,
                    earlier.status.in_(BLOCKING_STATUSES),
                )
            )

            stmt = (
                select(Outbox.id)
                .where(
                    Outbox.status == OutboxStatus.PENDING,
                    Outbox.next_attempt_at <= now_utc(),
                    ~blocked,
                )
                .order_by(Outbox.created_at, Outbox.sequence)
                .limit(batch)
                .with_for_update(skip_locked=True, of=Outbox)
            )

            ids = list(await self._session.scalars(stmt))
            span.set_tag("claimable_count", len(ids))
            return ids

    async def try_claim(self, outbox_id: UUID, *, worker_id: str) -> OutboxDTO | None:
        """
        Atomically move a record from PENDING to IN_PROGRESS.

        Returns the claimed record, or None when another dispatcher got it first.
        """
        with start_span(op="db", name="claim_outbox_record") as span:
            span.set_tag("outbox.id", str(outbox_id))

            stmt = (
                update(Outbox)
                .where(Outbox.id == outbox_id, Outbox.status == OutboxStatus.PENDING)
                .values(
                    status=OutboxStatus.IN_PROGRESS,
                    claimed_by=worker_id,
                    claimed_at=now_utc(),
                )
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount != 1:  # type: ignore[attr-defined]
                span.set_tag("claimed", "0")
                return None

            span.set_tag("claimed", "1")
            return await self.get(outbox_id)

    async def mark_published(self, outbox_id: UUID, *, worker_id: str) -> bool:
        """Updates the status to PUBLISHED if `worker_id` still owns the claim."""
        with start_span(op="db", name="mark_outbox_published") as span:
            span.set_tag("outbox.id", str(outbox_id))

            return await self._update_claimed(
                outbox_id,
                worker_id=worker_id,
                status=OutboxStatus.PUBLISHED,
                published_at=now_utc(),
                last_error=None,
                attempts=Outbox.attempts + 1,
            )

    async def schedule_retry(
        self,
        next_attempt_at: datetime,
        *,
        outbox_id: UUID,
        worker_id: str,
        error: str,
    ) -> bool:
        """
        Returns a failed record to PENDING.
        Increments the `attempts` counter and postpones the next attempt.
        """
        with start_span(op="db", name="schedule_outbox_retry") as span:
            span.set_tag("outbox.id", str(outbox_id))

            return await self._update_claimed(
                outbox_id,
                worker_id=worker_id,
                status=OutboxStatus.PENDING,
                next_attempt_at=next_attempt_at,
                last_error=error,
                attempts=Outbox.attempts + 1,
            )

    async def mark_failed(
        self, outbox_id: UUID, *, worker_id: str, error: str
    ) -> bool:
        """Marks the record as FAILED once no attempts are left."""
        with start_span(op="db", name="mark_outbox_failed") as span:
            span.set_tag("outbox.id", str(outbox_id))

            return await self._update_claimed(
                outbox_id,
                worker_id=worker_id,
                status=OutboxStatus.FAILED,
                last_error=error,
                attempts=Outbox.attempts + 1,
            )

    async def release(self, outbox_ids: Sequence[UUID], *, worker_id: str) -> int:
        """Give own IN_PROGRESS claims back without counting an attempt."""
        with start_span(op="db", name="release_outbox_claims"):
            if not outbox_ids:
                return 0

            stmt = (
                update(Outbox)
                .where(
                    Outbox.id.in_(outbox_ids),
                    Outbox.status == OutboxStatus.IN_PROGRESS,
                    Outbox.claimed_by == worker_id,
                )
                .values(status=OutboxStatus.PENDING, claimed_by=None, claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            return result.rowcount  # type: ignore[attr-defined]

    async def release_stale(self, claimed_before: datetime) -> int:
        """Return IN_PROGRESS records claimed before `claimed_before` to PENDING."""
        with start_span(op="db", name="release_stale_outbox_claims") as span:
            stmt = (
                update(Outbox)
                .where(
                    Outbox.status == OutboxStatus.IN_PROGRESS,
                    Outbox.claimed_at < claimed_before,
                )
                .values(status=OutboxStatus.PENDING, claimed_by=None, claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            released: int = result.rowcount  # type: ignore[attr-defined]

            span.set_tag("released_count", released)
            return released

    async def requeue_failed(self, outbox_ids: Sequence[UUID]) -> int:
        """Move FAILED records back to PENDING with a fresh attempt budget."""
        with start_span(op="db", name="requeue_failed_outbox"):
            if not outbox_ids:
                return 0

            stmt = (
                update(Outbox)
                .where(Outbox.id.in_(outbox_ids), Outbox.status == OutboxStatus.FAILED)
                .values(
                    status=OutboxStatus.PENDING,
                    attempts=0,
                    last_error=None,
                    next_attempt_at=now_utc(),
                    claimed_by=None,
                    claimed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            return result.rowcount  # type: ignore[attr-defined]

    async def _update_claimed(
        self, outbox_id: UUID, *, worker_id: str, **values: Any
    ) -> bool:
        stmt = (
            update(Outbox)
            .where(
                Outbox.id == outbox_id,
                Outbox.status == OutboxStatus.IN_PROGRESS,
                Outbox.claimed_by == worker_id,
            )
            .values(claimed_by=None, claimed_at=None, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]
