"""Per-request logging context for the scheduling service.

Each HTTP request runs inside ``request_scope``, which binds a correlation
id and the acting user's id for the duration of the request. Every logger
obtained through ``get_request_logger`` stamps both onto its records, so a
booking can be followed from the route through the booking transaction,
the matcher and the workflow, and attributed to whoever made it.

Usage:
    from service_scheduler.logging_context import get_request_logger, request_scope

    logger = get_request_logger(__name__)
    with request_scope("REQ-abc123", actor_id="staff-1"):
        logger.info("Confirming appointment")
        # 2025-03-17 08:00:00 [REQ-abc123 staff-1] [...] INFO: Confirming appointment
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_REQUEST = "-"
LOG_FORMAT = "%(asctime)s [%(request_id)s %(actor_id)s] [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST)
_actor_id: ContextVar[str] = ContextVar("actor_id", default=NO_REQUEST)


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12]}"


def get_request_id() -> str:
    return _request_id.get()


def get_actor_id() -> str:
    return _actor_id.get()


@contextmanager
def request_scope(request_id: Optional[str] = None, actor_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id (fresh if not given) and actor for the enclosed block."""
    rid = request_id or new_request_id()
    rid_token = _request_id.set(rid)
    actor_token = _actor_id.set(actor_id or NO_REQUEST)
    try:
        yield rid
    finally:
        _actor_id.reset(actor_token)
        _request_id.reset(rid_token)


class RequestIdFilter(logging.Filter):
    """Stamps ``request_id`` and ``actor_id`` onto every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        record.actor_id = _actor_id.get()  # type: ignore[attr-defined]
        return True


def request_handler() -> logging.Handler:
    """Stream handler whose format includes the request and actor ids.

    The filter sits on the handler, so records from third-party loggers
    (uvicorn, fastapi) format cleanly too.
    """
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def get_request_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
