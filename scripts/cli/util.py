"""CLI utilities: amount formatting and the structured log file."""

import logging
from decimal import Decimal
from pathlib import Path

from dues_kernel.logging_config import StructuredFormatter
from scripts.cli import config as cli_config


def fmt_amount(v) -> str:
    """Format amount for display (e.g. GH₵1,234.50)."""
    d = Decimal(str(v))
    return f"{cli_config.CURRENCY}{d:,.2f}"


class _FlushingFileHandler(logging.FileHandler):
    """FileHandler that flushes after every emit so the log updates immediately."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def file_log_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = _FlushingFileHandler(str(path), mode="a")
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter())
    return handler
