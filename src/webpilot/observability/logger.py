"""
observability/logger.py — WebPilot Structured Logger

structlog on top of stdlib logging. Every record goes to a size-rotated JSON
file (<log_dir>/webpilot.log); a console copy is optional because the CLI
shares the terminal with the REPL. Lines emitted while a task runs carry
task_id and category from bind_task().

    setup_logging(level="INFO", log_dir="./data/logs")   # once, at startup
    log = get_logger(__name__)
    log.info("executor.action_start", action="navigate", url="https://example.com")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

LOG_FILE_NAME = "webpilot.log"

# Third-party loggers that flood DEBUG with per-request lines
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "asyncio")


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 5,
) -> Path:
    """
    Configure structlog and the stdlib root logger. Returns the log file path.

    json_format only affects the console copy; the file is always JSON.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    log_path = Path(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    pre_chain = _pre_chain()

    def formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
        return structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(formatter(structlog.processors.JSONRenderer(ensure_ascii=False)))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter(
            structlog.processors.JSONRenderer(ensure_ascii=False)
            if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        ))
        handlers.append(console)

    for handler in handlers:
        handler.setLevel(numeric_level)
    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return log_path


def get_logger(name: str = "webpilot", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def bind_task(task_id: str, category: str = "generic") -> None:
    """
    Attach task_id and category to every log line in the current async
    context, so loop, executor and gate events can be grouped per task.
    """
    structlog.contextvars.bind_contextvars(task_id=task_id, category=category)


def clear_task() -> None:
    structlog.contextvars.clear_contextvars()
