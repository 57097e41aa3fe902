"""Tests for structured event loggers."""

import io
import json
from pathlib import Path

from terraform_harness.logging import ConsoleLogger, FileLogger, LogLevel, MultiLogger, NullLogger


def test_console_logger_filters_by_level() -> None:
    stream = io.StringIO()
    logger = ConsoleLogger(min_level=LogLevel.INFO, stream=stream)

    logger.debug("terraform.init", "terraform init", {"success": True})
    logger.warning("retry.scheduled", "Provider API throttling. Retrying apply in 5.0s",
                   {"attempt": 1, "delay": 5.0, "module": "root-module"})

    output = stream.getvalue()
    assert "terraform init" not in output
    assert "[root-module] Provider API throttling." in output
    assert "attempt=1, delay=5.0" in output


def test_console_logger_is_plain_when_not_a_tty() -> None:
    stream = io.StringIO()
    logger = ConsoleLogger(stream=stream)

    logger.info("terraform.apply", "terraform apply", {"success": False, "module": "root-module"})

    assert "\033[" not in stream.getvalue()
    assert stream.getvalue().rstrip().endswith("✗")


def test_console_logger_formats_test_events() -> None:
    stream = io.StringIO()
    logger = ConsoleLogger(stream=stream)

    logger.info("test.started", "", {"module": "root-module"})
    logger.info("test.completed", "", {"module": "root-module", "outcome": "passed"})
    logger.info("test.completed", "Deadline exceeded", {"module": "other", "outcome": "timed_out"})

    lines = stream.getvalue().splitlines()
    assert "🔨 root-module" in lines
    assert "✅ PASSED root-module" in lines
    assert "❌ TIMED OUT other: Deadline exceeded" in lines


def test_file_logger_writes_json_lines(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    logger = FileLogger(str(path), min_level=LogLevel.DEBUG)

    logger.debug("terraform.output", "terraform output", {"count": 1})
    logger.error("timeout.unknown_state", "apply timed out")

    entries = [json.loads(line) for line in path.read_text().splitlines()]
    assert [e["event"] for e in entries] == ["terraform.output", "timeout.unknown_state"]
    assert entries[0]["data"] == {"count": 1}
    assert entries[1]["level"] == "error"
    assert "data" not in entries[1]


def test_multi_logger_fans_out(tmp_path: Path) -> None:
    stream = io.StringIO()
    path = tmp_path / "events.jsonl"
    logger = MultiLogger(ConsoleLogger(stream=stream), FileLogger(str(path)), NullLogger())

    logger.info("run.completed", "1/1 passed", {"passed": 1, "failed": 0})

    assert "1/1 passed" in stream.getvalue()
    assert json.loads(path.read_text())["event"] == "run.completed"
