"""Structured logging configuration for QuestCanvas.

Two outputs:
- Console: Rich handler on stderr, level chosen by the -v count
- File: with --log, every event as JSONL in {logs_root}/logs/debug.jsonl

Events carry whatever is bound through ``quest_context`` so log lines from
the sync controller and the gateways can be grouped per quest.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import Processor

LOG_FILENAME = "debug.jsonl"
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")
_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


class JSONLFileHandler(logging.FileHandler):
    """File handler that writes one JSON object per record."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, object] = {
                "timestamp": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
            }
            # wrap_for_formatter hands the structlog event dict over as record.msg
            if isinstance(record.msg, dict):
                fields = {
                    k: v for k, v in record.msg.items() if k not in ("level", "timestamp")
                }
                entry["message"] = fields.pop("event", "")
                entry.update(fields)
            else:
                entry["message"] = record.getMessage()

            if self.stream:
                self.stream.write(json.dumps(entry, default=str) + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=True,
        level=_VERBOSITY_LEVELS.get(verbosity, logging.DEBUG),
    )


def _open_file_handler(logs_root: Path) -> JSONLFileHandler:
    global _logs_dir
    _logs_dir = logs_root / "logs"
    _logs_dir.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(_logs_dir / LOG_FILENAME), mode="a")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    logs_root: Path | None = None,
) -> None:
    """Configure logging for QuestCanvas.

    Safe to call repeatedly; a previous log file is closed first.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_to_file: Also write all events to {logs_root}/logs/debug.jsonl.
        logs_root: Directory that receives the ``logs/`` folder. Required if
            log_to_file=True.

    Raises:
        ValueError: If log_to_file=True but logs_root is not provided.
    """
    global _configured, _file_handler

    if log_to_file and logs_root is None:
        raise ValueError("logs_root is required when log_to_file=True")

    close_file_logging()

    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and logs_root is not None:
        _file_handler = _open_file_handler(logs_root)
        handlers.append(_file_handler)

    # The root logger stays open for the file handler; the console handler filters.
    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def quest_context(quest_id: str) -> Iterator[None]:
    """Bind ``quest_id`` to every event logged inside the block.

    Bindings live in context variables, so concurrent tasks each keep
    their own quest.
    """
    with structlog.contextvars.bound_contextvars(quest_id=quest_id):
        yield


def get_logs_dir() -> Path | None:
    """Directory holding the JSONL log, or None without file logging."""
    return _logs_dir


def close_file_logging() -> None:
    """Close the JSONL file handler, if one is open."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
