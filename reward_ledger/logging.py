"""
Structured logging for the reward ledger.

structlog renders every record (ledger operations as well as uvicorn/FastAPI
output routed through stdlib ``logging``) as JSON, or as coloured console
lines when ``log_format="console"``.

    from reward_ledger.logging import setup_logging, get_logger

    setup_logging()
    log = get_logger(__name__)
    log.info("pool_created", event_id=42, amount=1000)
"""

import logging
from typing import Any, Dict, Optional

import structlog

from .config import get_settings


def _shared_processors(service_name: str) -> list:
    def _ensure_service(_: logging.Logger, __: str, ev: Dict[str, Any]) -> Dict[str, Any]:
        ev.setdefault("service", service_name)
        return ev

    return [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _ensure_service,
    ]


def setup_logging(
    *,
    service_name: Optional[str] = None,
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Configure structlog and the root stdlib logger. Call once per process."""
    settings = get_settings()
    service_name = service_name or settings.service_name
    level = (level or settings.log_level).upper()
    log_format = (log_format or settings.log_format).lower()

    processors = _shared_processors(service_name)
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        # Uncached so structlog.testing.capture_logs sees module-level loggers.
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler()
    # structlog and foreign stdlib records share one renderer.
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=[structlog.stdlib.add_logger_name, *processors],
    ))

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.propagate = False
        lg.setLevel(level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    # Lazy proxy: module-level loggers pick up setup_logging() called later.
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
