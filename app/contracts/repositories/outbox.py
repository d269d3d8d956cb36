from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from app.schemas.outbox import OutboxDTO


class OutboxRepository(ABC):
    @abstractmethod
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
        Persist one outbox record inside the **current transaction**.

        Purpose:
        -------
            Implements the *Transactional Outbox* pattern:
            the record is saved **atomically** with the business data so that a
            single database commit guarantees either *both* are durable or *neither*.

        Args:
            id:
                Stable record id (the domain event id). Inserting an id that
                is already stored must not create a second record.
            aggregate_id:
                Entity the event describes. Records of one aggregate get a
                strictly increasing `sequence` in insertion order.
            correlation_id:
                Tracing token of the initiating request.

        Returns:
            The stored record, or `None` if it can not be read back.
        """

    @abstractmethod
    async def select_claimable(self, batch: int) -> list[UUID]:
        """
        Return up to `batch` ids of PENDING records due for dispatch,
        at most the oldest unfinished one per aggregate.
        """

    @abstractmethod
    async def try_claim(self, outbox_id: UUID, *, worker_id: str) -> OutboxDTO | None:
        """
        Compare-and-set the record from PENDING to IN_PROGRESS.

        **MUST** be atomic: of several concurrent callers exactly one gets
        the record, the others get None.
        """

    @abstractmethod
    async def mark_published(self, outbox_id: UUID, *, worker_id: str) -> bool: ...

    @abstractmethod
    async def schedule_retry(
        self,
        next_attempt_at: datetime,
        *,
        outbox_id: UUID,
        worker_id: str,
        error: str,
    ) -> bool: ...

    @abstractmethod
    async def mark_failed(
        self, outbox_id: UUID, *, worker_id: str, error: str
    ) -> bool: ...

    @abstractmethod
    async def release(self, outbox_ids: Sequence[UUID], *, worker_id: str) -> int: ...

    @abstractmethod
    async def release_stale(self, claimed_before: datetime) -> int: ...

    @abstractmethod
    async def requeue_failed(self, outbox_ids: Sequence[UUID]) -> int: ...
