from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.infra.database.repositories.outbox import PgOutboxRepository
from app.infra.database.uows.base import PgTxUOWContext, PgUnitOfWork, PgUOWContext


class PgOutboxUOWContext(PgUOWContext):
    def __init__(self, *, session: AsyncSession) -> None:
        super().__init__(session=session)
        self.outbox = PgOutboxRepository(session)


class PgOutboxTxUOWContext(PgTxUOWContext):
    def __init__(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> None:
        super().__init__(session=session, transaction=transaction)
        self.outbox = PgOutboxRepository(session)


class PgOutboxUnitOfWork(PgUnitOfWork[PgOutboxUOWContext, PgOutboxTxUOWContext]):
    def _make_tx_ctx(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> PgOutboxTxUOWContext:
        return PgOutboxTxUOWContext(session=session, transaction=transaction)

    def _make_plain_ctx(self, *, session: AsyncSession) -> PgOutboxUOWContext:
        return PgOutboxUOWContext(session=session)
