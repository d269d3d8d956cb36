import json
from datetime import timedelta
from logging import Logger
from typing import Sequence
from uuid import UUID

import sentry_sdk
from sqlalchemy.exc import SQLAlchemyError

from app.contracts.clients.publisher import EventPublisher
from app.domains.event import DomainEvent
from app.infra.database.uows import (
    PgOutboxTxUOWContext,
    PgOutboxUOWContext,
    PgUnitOfWork,
)
from app.infra.utils.time import now_utc
from app.schemas.outbox import OutboxDTO, OutboxPublishResult
from app.services.exceptions.outbox import OutboxValidationError, PersistenceError


class OutboxRecorder:
    """
    Appends domain events to the outbox within the caller's transaction.

    Nothing is published here; the dispatcher picks records up after commit.
    """

    def __init__(self, *, logger: Logger, default_topic: str) -> None:
        self._logger = logger
        self._default_topic = default_topic

    async def record(
        self,
        event: DomainEvent,
        correlation_id: str,
        *,
        ctx: PgOutboxTxUOWContext,
    ) -> OutboxDTO:
        """
        Store `event` as a PENDING outbox record.

        Arguments:
            correlation_id: Tracing token of the initiating request.
            ctx: Open transactional context of the business change.

        Raises:
            OutboxValidationError
                If the event or correlation id is malformed. Nothing is stored.
            PersistenceError
                If the record can't be written. The caller's transaction
                must be aborted.
        """
        payload = self._validate(event, correlation_id)

        try:
            record = await ctx.outbox.insert(
                id=event.id,
                aggregate_id=event.aggregate_id,
                event_type=event.name,
                topic=event.topic or self._default_topic,
                payload=payload,
                correlation_id=correlation_id,
            )
        except SQLAlchemyError as e:
            self._logger.error(
                f"Failed to record {event.name} for aggregate [{event.aggregate_id}]: {e}"
            )
            raise PersistenceError(
                f"Could not store outbox record for event {event.id}"
            ) from e

        if record is None:
            self._logger.error(
                f"Outbox record [{event.id}] for {event.name} vanished after insert"
            )
            raise PersistenceError(f"Could not read back outbox record {event.id}")

        self._logger.info(
            f"Recorded {event.name} [{record.id}] for aggregate [{record.aggregate_id}] "
            f"seq={record.sequence}"
        )
        return record

    def _validate(self, event: DomainEvent, correlation_id: str) -> dict:
        if not isinstance(event, DomainEvent):
            raise OutboxValidationError(
                f"Expected a DomainEvent, got {type(event).__name__}."
            )
        if not isinstance(event.aggregate_id, UUID):
            raise OutboxValidationError(
                f"{event.name} has invalid aggregate id {event.aggregate_id!r}."
            )
        if not isinstance(correlation_id, str) or not correlation_id.strip():
            raise OutboxValidationError("Correlation id must be a non-empty string.")

        try:
            return json.loads(event.serialize())
        except (TypeError, ValueError) as e:
            raise OutboxValidationError(
                f"{event.name} can't be serialized: {e}"
            ) from e


class OutboxService:
    """
    Dispatcher side of the outbox: claims due records, publishes them and
    moves them to their next state.
    """

    def __init__(
        self,
        uow: PgUnitOfWork[PgOutboxUOWContext, PgOutboxTxUOWContext],
        publisher: EventPublisher,
        *,
        logger: Logger,
        worker_id: str,
        batch=200,
        max_publish_attempts=5,
        backoff_base: float = 1.0,
        backoff_max: float = 300.0,
        claim_timeout: float = 60.0,
    ) -> None:
        self._uow = uow
        self._publisher = publisher

        self._logger = logger
        self._worker_id = worker_id
        self._batch = batch
        self._max_attempts = max_publish_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._claim_timeout = claim_timeout

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt after `attempts` failed ones."""
        delay = self._backoff_base * 2 ** max(attempts - 1, 0)
        return timedelta(seconds=min(delay, self._backoff_max))

    async def process_outbox_batch(self) -> int:
        await self.release_stale_claims()

        records = await self.claim_batch()
        if not records:
            return 0

        self._logger.info(f"Processing outbox batch with {len(records)} records...")

        try:
            results = await self._publisher.publish_batch(records)
        except BaseException:
            # Cancelled or crashed mid-publish: hand the claims back.
            await self.release_claims([rec.id for rec in records])
            raise

        published = await self._apply_results(results)

        self._logger.info(
            f"Processed outbox batch with {len(records)} records, published: {published}"
        )
        return len(records)

    async def claim_batch(self) -> list[OutboxDTO]:
        async with self._uow.begin(with_tx=True) as uow:
            ids = await uow.outbox.select_claimable(self._batch)

            claimed: list[OutboxDTO] = []
            for id in ids:
                record = await uow.outbox.try_claim(id, worker_id=self._worker_id)
                if record is None:
                    self._logger.debug(f"Outbox record [{id}] claimed by another worker")
                    continue
                claimed.append(record)

            return claimed

    async def release_stale_claims(self) -> int:
        claimed_before = now_utc() - timedelta(seconds=self._claim_timeout)
        async with self._uow.begin(with_tx=True) as uow:
            released = await uow.outbox.release_stale(claimed_before)

        if released:
            self._logger.warning(f"Released {released} stale outbox claims")
        return released

    async def release_claims(self, ids: Sequence[UUID]) -> int:
        async with self._uow.begin(with_tx=True) as uow:
            return await uow.outbox.release(ids, worker_id=self._worker_id)

    async def _apply_results(self, results: list[OutboxPublishResult]) -> int:
        published = 0
        async with self._uow.begin(with_tx=True) as uow:
            for res in results:
                rec = res.record
                if res.success:
                    owned = await uow.outbox.mark_published(
                        rec.id, worker_id=self._worker_id
                    )
                    published += owned
                else:
                    owned = await self._mark_failed(res, uow=uow)

                if not owned:
                    self._logger.warning(
                        f"Lost claim on outbox record [{rec.id}]; status left unchanged"
                    )
        return published

    async def _mark_failed(
        self, res: OutboxPublishResult, *, uow: PgOutboxTxUOWContext
    ) -> bool:
        rec = res.record
        error = res.error or "unknown error"
        attempts = rec.attempts + 1

        if attempts < self._max_attempts:
            next_attempt_at = now_utc() + self.backoff(attempts)
            self._logger.warning(
                f"Publishing outbox record [{rec.id}] failed "
                f"(attempt {attempts}/{self._max_attempts}): {error}"
            )
            return await uow.outbox.schedule_retry(
                next_attempt_at,
                outbox_id=rec.id,
                worker_id=self._worker_id,
                error=error,
            )

        self._logger.error(
            f"Outbox record [{rec.id}] {rec.event_type} for aggregate "
            f"[{rec.aggregate_id}] FAILED after {attempts} attempts: {error}"
        )
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("outbox.id", str(rec.id))
            scope.set_tag("outbox.event", rec.event_type)
            scope.set_tag("correlation_id", rec.correlation_id)
            sentry_sdk.capture_message(
                f"Outbox record exhausted publish attempts: {error}", level="error"
            )

        return await uow.outbox.mark_failed(
            rec.id, worker_id=self._worker_id, error=error
        )


class OutboxAdminService:
    """Manual inspection and replay of outbox records."""

    def __init__(
        self,
        uow: PgUnitOfWork[PgOutboxUOWContext, PgOutboxTxUOWContext],
        *,
        logger: Logger,
    ) -> None:
        self._uow = uow
        self._logger = logger

    async def replay_failed(self, ids: Sequence[UUID]) -> int:
        """Give FAILED records a fresh attempt budget. Other records are left as is."""
        async with self._uow.begin(with_tx=True) as uow:
            requeued = await uow.outbox.requeue_failed(ids)

        self._logger.info(f"Requeued {requeued} failed outbox records")
        return requeued
