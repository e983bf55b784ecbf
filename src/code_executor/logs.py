"""structlog setup shared by the executor service, the dispatcher and the CLI."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog

LOG_LEVEL_ENV = "CODE_EXECUTOR_LOG_LEVEL"

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
]


def _resolve_level(level: int | str | None) -> int:
    """Turn a level name, number or None (environment/INFO) into a number.

    Example:
        ```python
        _resolve_level("debug")  # 10
        ```
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: int | str | None = None,
    *,
    json_logs: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through stdlib logging with a console or JSON renderer.

    Example:
        ```python
        configure_logging("DEBUG", json_logs=True)
        ```
    """
    numeric_level = _resolve_level(level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    renderer: Any
    final_processors: list[Any] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_logs:
        final_processors.append(structlog.processors.dict_tracebacks)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    final_processors.append(renderer)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=final_processors,
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)
    # grpc's own loggers are noisy at INFO
    logging.getLogger("grpc").setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger bound to `name`.

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("executor_started", port=8811)
        ```
    """
    return structlog.get_logger(name) if name else structlog.get_logger()
