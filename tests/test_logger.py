"""Tests for per-pipeline logging."""

import re

from avdusage.logger import close_logger, format_log_line, get_logger

LINE_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[(INFO|WARNING|ERROR)\] .+$")


def test_log_line_format(tmp_path):
    logger = get_logger("sessions", tmp_path / "Logs")
    try:
        logger.info("Found %d sessions", 3)
        logger.error("Session enumeration failed: boom")
    finally:
        close_logger(logger)

    lines = (tmp_path / "Logs" / "sessions.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert all(LINE_RE.match(line) for line in lines)
    assert lines[0].endswith("[INFO] Found 3 sessions")


def test_handlers_not_duplicated(tmp_path):
    first = get_logger("processes", tmp_path)
    second = get_logger("processes", tmp_path)
    try:
        assert first is second
        assert len(second.handlers) == 2
        second.info("once")
    finally:
        close_logger(second)

    assert (tmp_path / "processes.log").read_text(encoding="utf-8").count("once") == 1


def test_log_is_appended_across_runs(tmp_path):
    for message in ("first run", "second run"):
        logger = get_logger("housekeeping", tmp_path)
        logger.info(message)
        close_logger(logger)

    text = (tmp_path / "housekeeping.log").read_text(encoding="utf-8")
    assert "first run" in text and "second run" in text


def test_format_log_line():
    assert format_log_line("INFO", "hello", "2025-11-08 09:00:00") == (
        "[2025-11-08 09:00:00] [INFO] hello"
    )
