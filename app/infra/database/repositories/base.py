from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.database.dialect import insert_for


class PostgresRepository:
    """Repository working on the session of the enclosing unit of work."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__()
        self._session = session

    def _insert(self, model):
        return insert_for(self._session, model)
