"""structlog setup shared by application code and stdlib loggers.

Call setup_logging() once at startup before any log calls. uvicorn, aiogram
and SQLAlchemy log through stdlib logging; their records are rendered by the
same structlog processor chain so the output stream stays uniform.
"""

from __future__ import annotations

import logging

import structlog

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("aiogram.event", "sqlalchemy.engine", "uvicorn.access")


def setup_logging(*, json_output: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        json_output: JSON lines when True, colored console output otherwise.
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))
