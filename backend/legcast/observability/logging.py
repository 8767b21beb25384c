from __future__ import annotations

import logging
from typing import Any, Dict

import structlog

from legcast.config import get_settings

SERVICE_NAME = "legcast"

# third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "apscheduler.executors.default", "uvicorn.access")


def configure_logging(level: str | None = None) -> None:
    """
    JSON logs to stdout through stdlib logging.

    The root level comes from LOG_LEVEL (default INFO); APScheduler follows
    SCHEDULER_LOG_LEVEL so retrain chatter can be tuned separately.
    """
    settings = get_settings()
    log_level = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(level=log_level, format="%(message)s", handlers=[logging.StreamHandler()])
    logging.getLogger("apscheduler").setLevel(settings.SCHEDULER_LOG_LEVEL.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            _add_service,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def _add_service(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict
