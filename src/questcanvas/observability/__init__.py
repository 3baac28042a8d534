"""Observability module for QuestCanvas.

Provides structured logging (structlog over a Rich console handler, with
optional JSONL file output) and per-quest log context.
"""

from questcanvas.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
    quest_context,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
    "quest_context",
]
