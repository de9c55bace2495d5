# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for the semantic index."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_LOG_DIR = Path.home() / ".semantic_index" / "logs"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Event fields never overwrite the core keys
        for key, value in getattr(record, "extra_fields", {}).items():
            log_data.setdefault(key, value)

        return json.dumps(log_data)


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
) -> Path:
    """Set up structured logging for the application.

    Console output goes to stderr: stdout carries the MCP stdio transport.

    Args:
        log_dir: Directory for log files. If None, uses ~/.semantic_index/logs/
        log_level: Logging level (default: INFO)
        console_output: Whether to also output to console (default: True)

    Returns:
        Path of the JSON log file.
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR

    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    log_file = log_dir / f"semantic_index_{datetime.now(timezone.utc).strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    logging.info(f"Logging initialized. Log directory: {log_dir}")
    return log_file
