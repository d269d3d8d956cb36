class PersistenceError(Exception):
    """
    Raised when an outbox record can't be written.

    The caller's transaction must fail as well, otherwise the business change
    would commit without its event.
    """


class OutboxValidationError(ValueError):
    """Raised when an event can't be recorded as given (nothing is stored)."""
