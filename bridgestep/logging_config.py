"""
Logging setup for bridgestep.

Stdlib loggers are routed through structlog so that module loggers and the
structured settlement events share one output. ``step_context`` binds the
step being executed so every line it produces can be correlated.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from .config import settings


def _renderer(log_format: str, level: int) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console" or level == logging.DEBUG:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        log_level: Override log level (default: settings.log_level)
        log_format: ``json``, ``console`` or ``auto`` (default: settings.log_format).
            ``auto`` renders for the console at DEBUG and JSON otherwise.
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    renderer = _renderer((log_format or settings.log_format).lower(), level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if isinstance(renderer, structlog.processors.JSONRenderer):
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stderr keeps stdout free for CLI output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # One request per settlement probe
    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def step_context(step_id: str, tool: Optional[str] = None) -> Iterator[None]:
    """Bind ``step_id`` (and ``tool``) to every structlog event in the block."""
    with structlog.contextvars.bound_contextvars(step_id=step_id, tool=tool):
        yield
