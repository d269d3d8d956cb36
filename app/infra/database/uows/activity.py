from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.infra.database.repositories.activity import PgActivityRepository
from app.infra.database.uows.base import PgTxUOWContext, PgUnitOfWork, PgUOWContext


class PgActivityUOWContext(PgUOWContext):
    def __init__(self, *, session: AsyncSession) -> None:
        super().__init__(session=session)
        self.activity = PgActivityRepository(session)


class PgActivityTxUOWContext(PgTxUOWContext):
    def __init__(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> None:
        super().__init__(session=session, transaction=transaction)
        self.activity = PgActivityRepository(session)


class PgActivityUnitOfWork(
    PgUnitOfWork[PgActivityUOWContext, PgActivityTxUOWContext]
):
    def _make_tx_ctx(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> PgActivityTxUOWContext:
        return PgActivityTxUOWContext(session=session, transaction=transaction)

    def _make_plain_ctx(self, *, session: AsyncSession) -> PgActivityUOWContext:
        return PgActivityUOWContext(session=session)
