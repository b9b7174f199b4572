import logging
import sys
from typing import Any, Dict, Optional

import structlog

from archive_reader.config import settings

_LOGGING_INITIALISED = False


REQUIRED_EVENT_FIELDS = (
    "event",
    "correlation_id",
    "url",
    "status",
    "elapsed_ms",
)

QUIET_PATHS = ("/healthz",)


def _inject_event_defaults(
    _: logging.Logger, __: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Ensure core structured logging fields are present on every event."""
    context = structlog.contextvars.get_contextvars()

    for key in ("correlation_id", "url", "path", "status_code", "status", "elapsed_ms"):
        if key not in event_dict and key in context:
            event_dict[key] = context[key]

    if "event" not in event_dict:
        message = event_dict.get("message")
        event_dict["event"] = message or event_dict.get("logger", "log.event")

    for field in REQUIRED_EVENT_FIELDS:
        event_dict.setdefault(field, None)

    return event_dict


def _filter_noisy_events(
    logger: logging.Logger, name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Drop request logs for health probes; everything else passes through."""
    path = event_dict.get("path")
    if event_dict.get("event") in {"http.request", "http.response"} and path in QUIET_PATHS:
        raise structlog.DropEvent
    return event_dict


def _build_pre_chain(log_format: str):
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_event_defaults,
        _filter_noisy_events,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "plain":
        processors.append(structlog.processors.UnicodeDecoder())

    return processors


def _build_renderer(log_format: str):
    if log_format == "plain":
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(
    force: bool = False,
    *,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
):
    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED and not force:
        return

    log_level = (log_level or settings.LOG_LEVEL or "INFO").upper()
    log_format = (log_format or settings.LOG_FORMAT or "json").strip().lower()
    if log_format not in {"json", "plain"}:
        log_format = "json"

    pre_chain = _build_pre_chain(log_format)
    renderer = _build_renderer(log_format)

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer, foreign_pre_chain=pre_chain, fmt="%(message)s"
    )

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logging.getLogger("werkzeug").setLevel(logging.INFO)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    # readability logs every candidate node at INFO.
    logging.getLogger("readability").setLevel(logging.WARNING)

    _LOGGING_INITIALISED = True
