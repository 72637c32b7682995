"""
Unit tests for logging setup.
"""

import json
import logging
import os
import stat

import pytest
import structlog

from diagserver.log import (
    LOG_FILE_MODE,
    LoggingInitError,
    configure_logging,
    log_level,
    log_levels,
)


pytestmark = pytest.mark.usefixtures("reset_logging")


def read_entries(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class TestLogLevels:

    def test_log_levels_in_severity_order(self):
        assert log_levels() == "debug, info, warn, error"

    @pytest.mark.parametrize("name, level", [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("Warn", logging.WARNING),
        ("error", logging.ERROR),
    ])
    def test_log_level(self, name, level):
        assert log_level(name) == level

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="invalid loglevel: trace"):
            log_level("trace")


class TestConfigureLogging:

    def test_json_file(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path), log_type="json", level=logging.INFO)
        structlog.get_logger("diagserver.test").info("started server", addr="127.0.0.1:8080")

        entries = read_entries(path)
        assert entries[0]["event"] == "configure_logging"
        assert entries[0]["log"] == {
            "filename": str(path),
            "type": "json",
            "level": "info",
            "add_source": False,
        }
        assert entries[1]["event"] == "started server"
        assert entries[1]["addr"] == "127.0.0.1:8080"
        assert entries[1]["level"] == "info"
        assert entries[1]["logger"] == "diagserver.test"
        assert "timestamp" in entries[1]

    def test_file_created_private(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path))

        assert stat.S_IMODE(os.stat(path).st_mode) == LOG_FILE_MODE

    def test_file_appended(self, tmp_path):
        path = tmp_path / "diag.log"
        path.write_text('{"event": "earlier"}\n')

        configure_logging(filename=str(path))

        events = [entry["event"] for entry in read_entries(path)]
        assert events == ["earlier", "configure_logging"]

    def test_level_filters(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path), level=logging.ERROR)
        log = structlog.get_logger("diagserver.test")
        log.info("hidden")
        log.error("shown")

        assert [entry["event"] for entry in read_entries(path)] == ["shown"]

    def test_stdlib_records_share_format(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path))
        logging.getLogger("third.party").warning("plain %s", "stdlib")

        entry = read_entries(path)[-1]
        assert entry["event"] == "plain stdlib"
        assert entry["level"] == "warning"

    def test_add_source(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path), add_source=True)
        structlog.get_logger("diagserver.test").info("where")

        entry = read_entries(path)[-1]
        assert entry["func_name"] == "test_add_source"
        assert entry["pathname"].endswith("test_log.py")
        assert isinstance(entry["lineno"], int)

    def test_text_format(self, tmp_path):
        path = tmp_path / "diag.log"

        configure_logging(filename=str(path), log_type="text")
        structlog.get_logger("diagserver.test").info("started server", addr="127.0.0.1:8080")

        lines = path.read_text().splitlines()
        assert "configure_logging" in lines[0]
        assert "started server" in lines[1]
        assert "addr=127.0.0.1:8080" in lines[1]
        with pytest.raises(json.JSONDecodeError):
            json.loads(lines[1])

    def test_reconfigure_replaces_handler(self, tmp_path):
        first, second = tmp_path / "first.log", tmp_path / "second.log"

        configure_logging(filename=str(first))
        configure_logging(filename=str(second))
        structlog.get_logger("diagserver.test").info("after")

        assert [e["event"] for e in read_entries(first)] == ["configure_logging"]
        assert [e["event"] for e in read_entries(second)] == ["configure_logging", "after"]

    def test_unopenable_file(self, tmp_path):
        with pytest.raises(LoggingInitError):
            configure_logging(filename=str(tmp_path / "missing" / "diag.log"))

    def test_invalid_type(self):
        with pytest.raises(ValueError, match="invalid logtype"):
            configure_logging(log_type="xml")
