import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import (
    AsyncContextManager,
    AsyncIterator,
    Generic,
    Literal,
    TypeVar,
    overload,
)

from sentry_sdk import start_span
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncSessionTransaction,
    async_sessionmaker,
)


class PgUOWContext:
    """Session holder for reads outside an explicit transaction."""

    def __init__(self, *, session: AsyncSession):
        self._session = session

    async def close(self):
        await self._session.close()


class PgTxUOWContext(PgUOWContext):
    """
    Session holder bound to one in-flight transaction.

    Everything written through the repositories of this context commits or
    rolls back together when the `begin(with_tx=True)` block exits.
    """

    def __init__(self, *, session: AsyncSession, transaction: AsyncSessionTransaction):
        super().__init__(session=session)
        self._transaction = transaction

    async def commit(self):
        try:
            await self._transaction.commit()
        except BaseException:
            await self._session.rollback()
            raise

    async def rollback(self):
        await self._session.rollback()


PlainContextT = TypeVar("PlainContextT", bound=PgUOWContext, covariant=True)
TxContextT = TypeVar("TxContextT", bound=PgTxUOWContext, covariant=True)


class PgUnitOfWork(ABC, Generic[PlainContextT, TxContextT]):
    """
    Demarcates database work.

    >>> async with uow.begin(with_tx=True) as ctx:
    ...     profile = await ctx.users.get_for_update(user_id)
    ...     await recorder.record(event, correlation_id, ctx=ctx)
    """

    def __init__(
        self,
        *,
        plain_sessionmaker: async_sessionmaker[AsyncSession],
        tx_sessionmaker: async_sessionmaker[AsyncSession],
    ) -> None:
        self._plain_sessionmaker = plain_sessionmaker
        self._tx_sessionmaker = tx_sessionmaker

    @abstractmethod
    def _make_tx_ctx(
        self, *, session: AsyncSession, transaction: AsyncSessionTransaction
    ) -> TxContextT: ...
    @abstractmethod
    def _make_plain_ctx(self, *, session: AsyncSession) -> PlainContextT: ...

    async def _open(self, *, with_tx: bool) -> TxContextT | PlainContextT:
        if not with_tx:
            return self._make_plain_ctx(session=self._plain_sessionmaker())

        session = self._tx_sessionmaker()
        transaction = await session.begin()
        return self._make_tx_ctx(session=session, transaction=transaction)

    @staticmethod
    async def _complete(ctx: PgUOWContext, *, failed: bool):
        try:
            if isinstance(ctx, PgTxUOWContext):
                if failed:
                    await ctx.rollback()
                else:
                    await ctx.commit()
        finally:
            await ctx.close()

    @overload
    def begin(self, *, with_tx: Literal[True]) -> AsyncContextManager[TxContextT]: ...
    @overload
    def begin(
        self, *, with_tx: Literal[False]
    ) -> AsyncContextManager[PlainContextT]: ...
    @asynccontextmanager
    async def begin(
        self, *, with_tx: bool
    ) -> AsyncIterator[TxContextT | PlainContextT]:
        """
        Open a context. Exits normally with a commit, with an error by
        rolling back and re-raising.

        Completion is shielded so a cancelled caller leaves no open
        transaction behind.
        """
        with start_span(op="db", name="uow_tx" if with_tx else "uow") as span:
            span.set_tag("uow", type(self).__name__)

            ctx = await self._open(with_tx=with_tx)
            try:
                yield ctx
            except BaseException:  # With CancelledError
                await asyncio.shield(self._complete(ctx, failed=True))
                raise

            await asyncio.shield(self._complete(ctx, failed=False))
