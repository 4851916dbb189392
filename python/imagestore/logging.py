"""structlog setup for the image store.

Every event, whether emitted through structlog or plain stdlib logging,
passes the same enrichers before it is rendered:

- request fields (request_id, path, method), bound per request by the
  request-id middleware
- store fields (store, bucket), bound once when the store client is built
- credential masking: values logged under a secret-looking field name are
  replaced with "***"

Usage:
    from imagestore.logging import get_logger

    logger = get_logger(__name__)
    logger.info("image_saved", key=key, size_bytes=size)
"""

import logging
import sys
from contextvars import ContextVar

import structlog

SECRET_FIELDS = frozenset({"authorization", "access_token", "gcs_access_token", "token"})
MASK = "***"

_request_fields: ContextVar[dict[str, str] | None] = ContextVar("request_fields", default=None)

# Process-wide; there is one store client per running app.
_store_fields: dict[str, str] = {}


def add_request_context(logger, method_name: str, event_dict: dict) -> dict:
    """Processor: add the current request's fields to the event."""
    for name, value in (_request_fields.get() or {}).items():
        event_dict.setdefault(name, value)
    return event_dict


def add_store_context(logger, method_name: str, event_dict: dict) -> dict:
    """Processor: add the bound store identity to the event."""
    for name, value in _store_fields.items():
        event_dict.setdefault(name, value)
    return event_dict


def mask_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """Processor: replace values of secret fields with a mask."""
    for name, value in event_dict.items():
        if value is not None and name.lower() in SECRET_FIELDS:
            event_dict[name] = MASK
    return event_dict


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        json_format: Render JSON lines (True) or the console renderer (False).
        level: Root log level name. "DEBUG" surfaces name collision events.
    """
    enrichers = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_request_context,
        add_store_context,
        mask_secrets,
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*enrichers, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=enrichers,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # Request logging is done by the request-id middleware
    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request fields for the current async context. None values are skipped."""
    fields = {"request_id": request_id, "path": path, "method": method}
    _request_fields.set({name: value for name, value in fields.items() if value is not None})


def clear_request_context() -> None:
    _request_fields.set(None)


def get_request_id() -> str | None:
    return (_request_fields.get() or {}).get("request_id")


def bind_store_context(store: str, bucket: str | None = None) -> None:
    """Bind the active store's identity to every later event."""
    _store_fields.clear()
    _store_fields["store"] = store
    if bucket:
        _store_fields["bucket"] = bucket


def clear_store_context() -> None:
    _store_fields.clear()
