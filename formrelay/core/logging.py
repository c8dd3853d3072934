"""structlog setup for FormRelay.

Application events and stdlib records (uvicorn, SQLAlchemy, httpx) leave
through a single stdout handler, stamped with the service name and the
request's X-Request-ID.
"""

import logging
import sys

import structlog
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "formrelay"

# Chatty third-party loggers; their warnings still come through
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def add_service_name(logger, method, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def build_formatter(json_logs: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_name,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Install the stdout handler on the root logger and configure structlog.

    Must run before the first ``structlog.get_logger()`` call is used:
    loggers cache their processor chain.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(json_logs))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_shared_processors() + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
