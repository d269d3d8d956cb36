from uuid import UUID

from sentry_sdk import start_span
from sqlalchemy import select, update

from app.contracts.repositories.user import UserRepository
from app.domains.profile import UserProfile
from app.infra.database.models import User
from app.infra.database.repositories.base import PostgresRepository


def _to_domain(row: User) -> UserProfile:
    return UserProfile(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        phone=row.phone,
        location=row.location,
        bio=row.bio,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


class PgUserRepository(PostgresRepository, UserRepository):
    async def get(self, user_id: UUID) -> UserProfile | None:
        with start_span(op="db", name="get_user_profile") as span:
            span.set_tag("user_id", str(user_id))

            row = await self._session.scalar(select(User).where(User.id == user_id))
            if row is None:
                return None
            return _to_domain(row)

    async def get_for_update(self, user_id: UUID) -> UserProfile | None:
        """
        Retrieve the current snapshot of a `UserProfile` and reserve it for
        exclusive write-access until the transaction ends.
        """
        with start_span(op="db", name="get_user_profile_for_update") as span:
            span.set_tag("user_id", str(user_id))

            stmt = select(User).where(User.id == user_id).with_for_update()
            row = await self._session.scalar(stmt)
            if row is None:
                return None
            return _to_domain(row)

    async def save(self, profile: UserProfile) -> bool:
        """
        Persist the profile fields.

        Only applies when the stored version is older than `profile.version`.
        Returns `True` if the row was changed.
        """
        with start_span(op="db", name="save_user_profile") as span:
            span.set_tag("user_id", str(profile.id))

            stmt = (
                update(User)
                .where(User.id == profile.id, User.version < profile.version)
                .values(
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    phone=profile.phone,
                    location=profile.location,
                    bio=profile.bio,
                    avatar_url=profile.avatar_url,
                    updated_at=profile.updated_at,
                    version=profile.version,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            return result.rowcount == 1  # type: ignore[attr-defined]
