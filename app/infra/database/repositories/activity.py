from datetime import datetime
from uuid import UUID

from sentry_sdk import start_span
from sqlalchemy import literal_column, select

from app.infra.database.models import ProfileActivity
from app.infra.database.repositories.base import PostgresRepository


class PgActivityRepository(PostgresRepository):
    async def store_once(
        self,
        message_id: UUID,
        *,
        user_id: UUID,
        event_type: str,
        changed_fields: list[str],
        correlation_id: str | None,
        occurred_at: datetime,
    ) -> bool:
        """
        Insert an activity entry keyed by `message_id`.

        Returns `False` if the message was already stored.
        """
        with start_span(op="db", name="store_profile_activity") as span:
            span.set_tag("message_id", str(message_id))

            stmt = (
                self._insert(ProfileActivity)
                .values(
                    id=message_id,
                    user_id=user_id,
                    event_type=event_type,
                    changed_fields=changed_fields,
                    correlation_id=correlation_id,
                    occurred_at=occurred_at,
                )
                .on_conflict_do_nothing(index_elements=["id"])
                .returning(literal_column("1"))
            )
            row = await self._session.scalar(stmt)

            inserted = row is not None
            span.set_tag("duplicate", str(not inserted))
            return inserted

    async def list_for_user(self, user_id: UUID, *, limit: int = 50) -> list[ProfileActivity]:
        with start_span(op="db", name="list_profile_activity"):
            stmt = (
                select(ProfileActivity)
                .where(ProfileActivity.user_id == user_id)
                .order_by(ProfileActivity.occurred_at.desc())
                .limit(limit)
            )
            return list(await self._session.scalars(stmt))
