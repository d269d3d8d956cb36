from datetime import datetime
from logging import Logger
from typing import Any
from uuid import UUID

from app.infra.database.uows import (
    PgActivityTxUOWContext,
    PgActivityUOWContext,
    PgUnitOfWork,
)
from app.schemas.profile import ActivityEntry


class ActivityService:
    """Consumer-side projection of profile events into an activity feed."""

    def __init__(
        self,
        uow: PgUnitOfWork[PgActivityUOWContext, PgActivityTxUOWContext],
        *,
        logger: Logger,
    ) -> None:
        self._uow = uow
        self._logger = logger

    async def apply(
        self,
        envelope: dict[str, Any],
        *,
        message_id: UUID,
        correlation_id: str | None = None,
    ) -> bool:
        """
        Project one delivered event envelope.

        Deliveries are at-least-once; a `message_id` seen before is ignored.
        Returns whether the message had an effect.
        """
        payload = envelope.get("payload", {})

        async with self._uow.begin(with_tx=True) as uow:
            inserted = await uow.activity.store_once(
                message_id,
                user_id=UUID(envelope["aggregate_id"]),
                event_type=envelope["event_type"],
                changed_fields=list(payload.get("changed_fields", [])),
                correlation_id=correlation_id,
                occurred_at=datetime.fromisoformat(envelope["occurred_at"]),
            )

        if inserted:
            self._logger.info(
                f"Projected {envelope['event_type']} [{message_id}] "
                f"for user [{envelope['aggregate_id']}]"
            )
        else:
            self._logger.info(f"Duplicate delivery of [{message_id}] skipped")
        return inserted

    async def list_recent(self, user_id: UUID, *, limit: int = 50) -> list[ActivityEntry]:
        async with self._uow.begin(with_tx=False) as uow:
            rows = await uow.activity.list_for_user(user_id, limit=limit)
            return [
                ActivityEntry(
                    id=str(row.id),
                    event_type=row.event_type,
                    changed_fields=list(row.changed_fields),
                    occurred_at=row.occurred_at.isoformat(),
                )
                for row in rows
            ]
