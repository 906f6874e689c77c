from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

from fxjournal.utils.config import get_settings


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure stdlib handlers and structlog JSON output.

    ``level`` and ``log_file`` override the settings. An empty ``log_file``
    logs to stdout only. Calling again replaces the previous handlers.
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    path = settings.log_file if log_file is None else log_file

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if path:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="a"))

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def summarize_payload(data: Any, max_items: int = 5) -> dict[str, Any]:
    """Compact description of a backup payload for log lines."""
    if isinstance(data, dict):
        keys = sorted(str(k) for k in data.keys())
        return {"type": "dict", "size": len(data), "keys": keys[:max_items]}
    if isinstance(data, (list, tuple)):
        return {"type": type(data).__name__, "size": len(data)}
    return {"type": type(data).__name__}
