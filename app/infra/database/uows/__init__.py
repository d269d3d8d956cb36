from app.infra.database.uows.activity import (
    PgActivityTxUOWContext,
    PgActivityUOWContext,
)
from app.infra.database.uows.base import PgUnitOfWork
from app.infra.database.uows.outbox import PgOutboxTxUOWContext, PgOutboxUOWContext
from app.infra.database.uows.profile import (
    PgProfileTxUOWContext,
    PgProfileUOWContext,
)

__all__ = [
    "PgUnitOfWork",
    #
    "PgOutboxUOWContext",
    "PgOutboxTxUOWContext",
    #
    "PgProfileUOWContext",
    "PgProfileTxUOWContext",
    #
    "PgActivityUOWContext",
    "PgActivityTxUOWContext",
]
