from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog

from stay_booking.config import LOG_LEVEL, PAYMENT_ENV

# Outbound mail goes through requests/urllib3; SQL echo is too chatty at INFO.
QUIET_LOGGERS = ("urllib3", "sqlalchemy.engine")


def add_payment_env(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("payment_env", PAYMENT_ENV)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog for the API process and the maintenance scripts.

    Events are JSON lines unless LOG_LEVEL is DEBUG, which switches to the
    console renderer. The request id bound by the middleware is merged in.
    """
    logging.basicConfig(stream=sys.stdout, level=LOG_LEVEL, format="%(name)s: %(message)s")
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer: Any = (
        structlog.dev.ConsoleRenderer()
        if LOG_LEVEL == "DEBUG"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            add_payment_env,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
