"""Per-request correlation ids, shared by ``flask.g`` and the structlog context."""

import re
from typing import Optional
from uuid import uuid4

import structlog
from flask import g

CORRELATION_HEADER = "X-Correlation-ID"

_USABLE_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def start_request_context(incoming_id: Optional[str], path: str) -> str:
    """Reset the logging context and bind this request's correlation id.

    A caller-supplied id is reused only when it looks like an id; anything
    else is replaced so header text never lands in log lines verbatim.
    """
    structlog.contextvars.clear_contextvars()
    candidate = (incoming_id or "").strip()
    correlation_id = candidate if _USABLE_ID.match(candidate) else uuid4().hex
    g.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id, path=path)
    return correlation_id


def bind_target_url(url: Optional[str]) -> None:
    structlog.contextvars.bind_contextvars(url=url)
