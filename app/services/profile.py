from logging import Logger
from uuid import UUID

from app.domains.profile import UserProfile
from app.infra.database.uows import (
    PgProfileTxUOWContext,
    PgProfileUOWContext,
    PgUnitOfWork,
)
from app.schemas.profile import ProfileUpdateRequest, UserProfileResponse
from app.services.exceptions.profile import StaleProfileError, UserNotFoundError
from app.services.outbox import OutboxRecorder


class ProfileService:
    def __init__(
        self,
        uow: PgUnitOfWork[PgProfileUOWContext, PgProfileTxUOWContext],
        recorder: OutboxRecorder,
        *,
        logger: Logger,
    ) -> None:
        self._uow = uow
        self._recorder = recorder
        self._logger = logger

    async def get_profile(self, user_id: UUID) -> UserProfileResponse:
        """
        Raises:
            UserNotFoundError
                If the user does not exist.
        """
        async with self._uow.begin(with_tx=False) as uow:
            profile = await uow.users.get(user_id)

        if profile is None:
            raise UserNotFoundError(user_id)
        return UserProfileResponse.from_domain(profile)

    async def update_profile(
        self,
        user_id: UUID,
        changes: ProfileUpdateRequest,
        *,
        correlation_id: str,
    ) -> UserProfileResponse:
        """
        Copy the non-null fields of `changes` onto the user's profile.

        The profile row and the `ProfileUpdated` outbox record are written in
        one transaction. A request without value changes still bumps the
        version and records an event with empty `changed_fields`.

        Raises:
            UserNotFoundError
                If the user does not exist.
            StaleProfileError
                If the stored version moved on before the save.
            PersistenceError
                If the outbox record can't be stored; the profile change is
                rolled back as well.
        """
        profile = await self._apply(
            user_id,
            changes.model_dump(exclude_none=True),
            correlation_id=correlation_id,
        )
        return UserProfileResponse.from_domain(profile)

    async def update_avatar(
        self, user_id: UUID, avatar_url: str, *, correlation_id: str
    ) -> UserProfileResponse:
        profile = await self._apply(
            user_id, {"avatar_url": avatar_url}, correlation_id=correlation_id
        )
        return UserProfileResponse.from_domain(profile)

    async def _apply(
        self, user_id: UUID, changes: dict[str, str], *, correlation_id: str
    ) -> UserProfile:
        async with self._uow.begin(with_tx=True) as uow:
            profile = await uow.users.get_for_update(user_id)
            if profile is None:
                raise UserNotFoundError(user_id)

            self._logger.info(
                f"Updating profile of user [{user_id}], fields: {', '.join(sorted(changes)) or '-'}"
            )
            changed = profile.update(actor_id=user_id, **changes)
            if not changed:
                self._logger.info(f"Profile of user [{user_id}] has no value changes.")

            if not await uow.users.save(profile):
                raise StaleProfileError(user_id, profile.version)
            for event in profile.pull_events():
                await self._recorder.record(event, correlation_id, ctx=uow)

        self._logger.info(f"Profile of user [{user_id}] updated to version {profile.version}.")
        return profile
