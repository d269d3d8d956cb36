import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

LOG_CONTEXT_FIELDS = ("correlation_id", "user_id", "action", "ip", "user_agent")

_log_context: ContextVar[dict[str, str]] = ContextVar("log_context", default={})


class LogContextFilter(logging.Filter):
    """Copies the current log context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        for key in LOG_CONTEXT_FIELDS:
            if not hasattr(record, key):
                setattr(record, key, ctx.get(key, "-"))
        return True


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """
    Bind request-scoped fields to log records inside the block.

    Nested blocks extend the outer context; `None` values are skipped.
    """
    merged = {
        **_log_context.get(),
        **{k: str(v) for k, v in fields.items() if v is not None},
    }
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


def _create_logger() -> logging.Logger:
    logger = logging.getLogger("profile")
    logger.setLevel(logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.addFilter(LogContextFilter())
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s [%(correlation_id)s] [%(action)s] "
                "[user=%(user_id)s ip=%(ip)s] %(name)s: %(message)s"
            )
        )
        logger.addHandler(handler)
        logger.propagate = False

    return logger


logger = _create_logger()
