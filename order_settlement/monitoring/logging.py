"""
Structured logging configuration.

Every event is a JSON line rendered by structlog; the stdlib root logger
(uvicorn, SQLAlchemy, httpx) goes through python-json-logger so both streams
share one format. Gateway credentials and webhook signatures never reach the
log output, and payer emails are masked.
"""
import logging
import sys
from typing import Any, Callable, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from order_settlement.config import Settings, get_settings

EventDict = Dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]

REDACTED = "***"

# Keys whose values are replaced outright
SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "comgate_secret",
        "signature",
        "x_signature",
        "authorization",
        "password",
    }
)

# Keys holding payer email addresses
EMAIL_KEYS = frozenset({"email", "payer_email", "user_email"})


def mask_email(value: Any) -> Any:
    """
    Keep the first character of the local part and the whole domain.

    >>> mask_email("jana.novakova@example.com")
    'j***@example.com'
    """
    if not isinstance(value, str) or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    return f"{local[:1]}{REDACTED}@{domain}"


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor removing credentials and masking payer emails."""
    for key in list(event_dict):
        lowered = key.lower()
        if lowered in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif lowered in EMAIL_KEYS:
            event_dict[key] = mask_email(event_dict[key])
    return event_dict


def service_context(settings: Settings) -> Processor:
    """
    Build a processor stamping every event with the service identity.

    gateway_mode tells test-mode Comgate traffic apart from live payments
    when logs from several environments land in the same index.
    """
    context = {
        "app_name": settings.app_name,
        "app_env": settings.app_env,
        "gateway_mode": "test" if settings.gateway_test_mode else "live",
    }

    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def bind_request_context(request_id: str, **fields: Any) -> None:
    """Attach request-scoped fields to every event logged by this task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once; existing root handlers are replaced.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            service_context(settings),
            redact_sensitive_fields,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # structlog events arrive pre-rendered; this formatter covers third-party loggers
    json_handler = logging.StreamHandler(sys.stdout)
    json_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(json_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
        gateway_mode="test" if settings.gateway_test_mode else "live",
    )
