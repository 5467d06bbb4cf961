"""Session ID logging context for tracing a quote across modules.

Every quote_engine module logs through ``get_session_logger``, so records
carry the id of the quote session that was acting when they were emitted.
The id is scoped: ``session_scope`` sets it for one wizard action and puts
the previous value back afterwards, so sessions sharing an event loop never
tag each other's records.

Usage:
    from quote_engine.logging_context import get_session_logger, session_scope

    logger = get_session_logger(__name__)
    with session_scope("QS-abc123"):
        logger.info("Quote computed")  # record.session_id == "QS-abc123"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

NO_SESSION_ID = "NO_SESSION_ID"

_session_id: ContextVar[str] = ContextVar("session_id", default=NO_SESSION_ID)


def set_session_id(session_id: str) -> Token:
    """Set the correlation ID for the current async context."""
    return _session_id.set(session_id)


def reset_session_id(token: Token) -> None:
    """Restore the correlation ID that was current before ``set_session_id``."""
    _session_id.reset(token)


def get_session_id() -> str:
    """Retrieve the current correlation ID."""
    return _session_id.get()


@contextmanager
def session_scope(session_id: str) -> Iterator[None]:
    """Tag records with ``session_id`` for the duration of the block."""
    token = set_session_id(session_id)
    try:
        yield
    finally:
        reset_session_id(token)


class SessionIdFilter(logging.Filter):
    """Injects session_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the SessionIdFilter attached.

    Logger filters only see records created on that logger, so each module
    asks for its own. The filter adds ``session_id`` to each record so
    formatters can include ``%(session_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger
