"""Tests for stackpilot.logging."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

from stackpilot.logging import (
    ROOT_LOGGER,
    ConsoleFormatter,
    JSONLFormatter,
    log_with_context,
    setup_logging,
    use_color,
)


def _record(level: int = logging.WARNING, message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="stackpilot.engine.retry",
        level=level,
        pathname="retry.py",
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Console and JSONL output."""

    def test_console_strips_root_prefix(self) -> None:
        line = ConsoleFormatter(color=False).format(_record())
        assert "[engine.retry] WARNING: hello" in line

    def test_console_color(self) -> None:
        line = ConsoleFormatter(color=True).format(_record())
        assert "\033[33mWARNING" in line

    def test_jsonl_fields(self) -> None:
        entry = json.loads(JSONLFormatter().format(_record(context={"stack": "web"})))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "stackpilot.engine.retry"
        assert entry["message"] == "hello"
        assert entry["context"] == {"stack": "web"}
        assert entry["source"]["line"] == 10

    def test_jsonl_omits_source_below_warning(self) -> None:
        entry = json.loads(JSONLFormatter().format(_record(level=logging.INFO)))
        assert "source" not in entry

    def test_no_color_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        assert not use_color(io.StringIO())


class TestSetupLogging:
    """Handler configuration on the stackpilot logger."""

    def test_console_only(self) -> None:
        stream = io.StringIO()
        logger = setup_logging(level=logging.INFO, stream=stream)

        logging.getLogger("stackpilot.engine.changesets").info("Created change set cs-1")
        logging.getLogger("stackpilot.engine.changesets").debug("hidden")

        assert logger.name == ROOT_LOGGER
        assert not logger.propagate
        assert "Created change set cs-1" in stream.getvalue()
        assert "hidden" not in stream.getvalue()

    def test_repeated_setup_does_not_duplicate_handlers(self) -> None:
        setup_logging(stream=io.StringIO())
        logger = setup_logging(stream=io.StringIO())
        assert len(logger.handlers) == 1

    def test_file_receives_debug_as_jsonl(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "stackpilot.jsonl"
        stream = io.StringIO()
        logger = setup_logging(level=logging.WARNING, log_file=log_file, stream=stream)

        log_with_context(
            logging.getLogger("stackpilot.cli.deploy"),
            logging.DEBUG,
            "Deployment finished",
            {"stack_name": "web"},
            state="DONE_SUCCESS",
        )
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["message"] == "Deployment finished"
        assert entry["context"] == {"stack_name": "web", "state": "DONE_SUCCESS"}
        assert stream.getvalue() == ""
