# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for logging setup."""

import json
import logging
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from semantic_index.config import Config
from semantic_index.logging_setup import StructuredFormatter, setup_logging
from semantic_index.project_cache import ProjectCache


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_creates_directory(tmp_path: Path):
    log_dir = tmp_path / "logs"
    assert not log_dir.exists()

    setup_logging(log_dir=log_dir, console_output=False)

    assert log_dir.is_dir()


def test_setup_logging_returns_log_file(tmp_path: Path):
    log_file = setup_logging(log_dir=tmp_path, console_output=False)

    assert log_file.parent == tmp_path
    assert log_file.name.startswith("semantic_index_")
    assert log_file.suffix == ".log"
    assert log_file.exists()


def test_logging_produces_json(tmp_path: Path):
    log_file = setup_logging(log_dir=tmp_path, log_level=logging.INFO, console_output=False)

    logging.getLogger("test_logger").info("Test message")

    log_lines = [line for line in log_file.read_text().splitlines() if line]
    # Startup message + test message
    assert len(log_lines) >= 2
    entries = [json.loads(line) for line in log_lines]
    for entry in entries:
        assert {"timestamp", "level", "logger", "message"} <= set(entry)
    assert entries[-1]["message"] == "Test message"
    assert entries[-1]["logger"] == "test_logger"


def test_logging_levels(tmp_path: Path):
    log_file = setup_logging(log_dir=tmp_path, log_level=logging.WARNING, console_output=False)

    logger = logging.getLogger("test_logger")
    logger.info("Info message")
    logger.warning("Warning message")

    messages = [json.loads(line)["message"] for line in log_file.read_text().splitlines()]
    assert "Info message" not in messages
    assert "Warning message" in messages


def test_console_output_goes_to_stderr(tmp_path: Path):
    setup_logging(log_dir=tmp_path, console_output=True)

    streams = [
        h.stream
        for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]
    assert streams == [sys.stderr]


def test_structured_formatter_includes_exception_and_extra_fields():
    formatter = StructuredFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    record.extra_fields = {"project": "/tmp/project"}

    data = json.loads(formatter.format(record))

    assert data["level"] == "ERROR"
    assert data["project"] == "/tmp/project"
    assert "ValueError: boom" in data["exception"]


def test_extra_fields_do_not_replace_core_keys():
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    record.extra_fields = {"level": "bogus", "event": "custom"}

    data = json.loads(StructuredFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["event"] == "custom"


def test_project_cache_events_reach_the_log_file(tmp_path: Path):
    log_file = setup_logging(
        log_dir=tmp_path / "logs", log_level=logging.DEBUG, console_output=False
    )
    project = tmp_path / "project"
    project.mkdir()
    cache = ProjectCache(
        Config.from_dict({}), loader=lambda root: SimpleNamespace(root=root, file_count=3)
    )

    cache.get_or_create(str(project))
    cache.get_or_create(str(project))

    entries = [json.loads(line) for line in log_file.read_text().splitlines() if line]
    by_event = {e["event"]: e for e in entries if "event" in e}
    assert by_event["project_cache_miss"]["files"] == 3
    assert by_event["project_cache_miss"]["estimated_memory_mb"] == 1.5
    assert by_event["project_cache_hit"]["hit_count"] == 1
    assert by_event["project_cache_hit"]["project"] == str(project.resolve())
