from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.infra.database.repositories.user import PgUserRepository
from app.infra.database.uows.base import PgUnitOfWork
from app.infra.database.uows.outbox import PgOutboxTxUOWContext, PgOutboxUOWContext


class PgProfileUOWContext(PgOutboxUOWContext):
    def __init__(self, *, session: AsyncSession) -> None:
        super().__init__(session=session)
        self.users = PgUserRepository(session)


class PgProfileTxUOWContext(PgOutboxTxUOWContext):
    def __init__(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> None:
        super().__init__(session=session, transaction=transaction)
        self.users = PgUserRepository(session)


class PgProfileUnitOfWork(PgUnitOfWork[PgProfileUOWContext, PgProfileTxUOWContext]):
    def _make_tx_ctx(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> PgProfileTxUOWContext:
        return PgProfileTxUOWContext(session=session, transaction=transaction)

    def _make_plain_ctx(self, *, session: AsyncSession) -> PgProfileUOWContext:
        return PgProfileUOWContext(session=session)
