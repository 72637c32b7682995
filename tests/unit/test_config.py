"""
Unit tests for server configuration.
"""

import pytest

from diagserver.config import DEFAULT_ADDR, ServerConfig, parse_addr


class TestParseAddr:
    """Tests for parse_addr()."""

    @pytest.mark.parametrize("addr, expected", [
        ("localhost:8080", ("localhost", 8080)),
        (":8080", ("", 8080)),
        ("127.0.0.1:0", ("127.0.0.1", 0)),
        ("[::1]:3000", ("::1", 3000)),
        ("[::]:80", ("::", 80)),
    ])
    def test_valid(self, addr, expected):
        assert parse_addr(addr) == expected

    @pytest.mark.parametrize("addr", [
        "localhost",
        "localhost:http",
        "localhost:",
        "localhost:65536",
        "localhost:-1",
        "::1:8080",
    ])
    def test_invalid(self, addr):
        with pytest.raises(ValueError):
            parse_addr(addr)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.addr == DEFAULT_ADDR
        assert config.shutdown_timeout == 10.0
        assert config.log_type == "json"
        assert config.request_id_prefix_length == 6
        assert config.request_id_width == 10
        config.validate()

    def test_addr_brackets_ipv6(self):
        assert ServerConfig(host="::1", port=9000).addr == "[::1]:9000"
        assert ServerConfig(host="", port=9000).addr == ":9000"

    def test_from_addr_with_overrides(self):
        config = ServerConfig.from_addr(":3000", shutdown_timeout=2.5)

        assert config.host == ""
        assert config.port == 3000
        assert config.shutdown_timeout == 2.5

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DIAG_ADDR", "127.0.0.1:9999")
        monkeypatch.setenv("DIAG_LOG_LEVEL", "debug")
        monkeypatch.setenv("DIAG_LOG_TYPE", "text")
        monkeypatch.setenv("DIAG_SHUTDOWN_TIMEOUT", "3")
        monkeypatch.delenv("DIAG_LOG_FILE", raising=False)

        config = ServerConfig.from_env()

        assert (config.host, config.port) == ("127.0.0.1", 9999)
        assert config.log_level == "debug"
        assert config.log_type == "text"
        assert config.shutdown_timeout == 3.0
        assert config.log_file == ""

    def test_from_env_defaults(self, monkeypatch):
        for name in ("DIAG_ADDR", "DIAG_LOG_FILE", "DIAG_LOG_LEVEL",
                     "DIAG_LOG_TYPE", "DIAG_SHUTDOWN_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_from_env_invalid(self, monkeypatch):
        monkeypatch.setenv("DIAG_SHUTDOWN_TIMEOUT", "soon")

        with pytest.raises(ValueError):
            ServerConfig.from_env()

    @pytest.mark.parametrize("overrides, message", [
        ({"port": 70000}, "Invalid port"),
        ({"backlog": 0}, "backlog"),
        ({"buffer_size": 10}, "buffer_size"),
        ({"read_timeout": 0}, "read_timeout"),
        ({"shutdown_timeout": -1}, "shutdown_timeout"),
        ({"request_id_prefix_length": 0}, "request_id_prefix_length"),
        ({"request_id_width": 0}, "request_id_width"),
        ({"log_type": "xml"}, "invalid logtype"),
        ({"log_level": "verbose"}, "invalid loglevel"),
    ])
    def test_validate(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            ServerConfig(**overrides).validate()

    def test_log_level_case_insensitive(self):
        ServerConfig(log_level="WARN").validate()
