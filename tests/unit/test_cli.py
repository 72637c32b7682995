"""
Tests for the command-line entry point and its exit codes.
"""

import socket

import pytest

import diagserver.__main__ as cli
from diagserver import __version__
from diagserver.exitcodes import ExitCode
from diagserver.server import ServerState

from conftest import fetch


pytestmark = pytest.mark.usefixtures("reset_logging")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DIAG_ADDR", "DIAG_LOG_FILE", "DIAG_LOG_LEVEL",
                 "DIAG_LOG_TYPE", "DIAG_SHUTDOWN_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


class TestUsageErrors:

    @pytest.mark.parametrize("addr", ["nope", "localhost:99999", "::1:80"])
    def test_bad_addr(self, addr, capsys):
        assert cli.main(["--addr", addr]) == ExitCode.USAGE

        err = capsys.readouterr().err
        assert err.startswith("usage: diagserver")

    def test_bad_env(self, monkeypatch):
        monkeypatch.setenv("DIAG_ADDR", "no-port")

        assert cli.main([]) == ExitCode.USAGE

    def test_bad_loglevel(self):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--loglevel", "trace"])

        assert exc.value.code == 2

    def test_loglevel_case_insensitive(self):
        args = cli.build_parser(cli.ServerConfig()).parse_args(["--loglevel", "DEBUG"])

        assert args.loglevel == "debug"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--version"])

        assert exc.value.code == 0
        assert capsys.readouterr().out.strip() == f"diagserver {__version__}"


class TestStartupFailures:

    def test_unopenable_logfile(self, tmp_path):
        logfile = tmp_path / "missing" / "diag.log"

        code = cli.main(["--addr", "127.0.0.1:0", "--logfile", str(logfile)])

        assert code == ExitCode.LOG

    def test_port_in_use(self, tmp_path):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]

            code = cli.main([
                "--addr", f"127.0.0.1:{port}",
                "--logfile", str(tmp_path / "diag.log"),
            ])

        assert code == ExitCode.SERVER
        assert "failed to listen" in (tmp_path / "diag.log").read_text()

    def test_templates_unavailable(self, tmp_path, monkeypatch):
        def broken_load(directory=None):
            raise cli.TemplateError("load templates: gone")

        monkeypatch.setattr(cli.Templates, "load", staticmethod(broken_load))

        code = cli.main(["--addr", "127.0.0.1:0", "--logfile", str(tmp_path / "diag.log")])

        assert code == ExitCode.TEMPLATE

    def test_random_source_unavailable(self, tmp_path, monkeypatch):
        def broken_generator(**kwargs):
            raise cli.RandomSourceError("no entropy")

        monkeypatch.setattr(cli, "RequestIDGenerator", broken_generator)

        code = cli.main(["--addr", "127.0.0.1:0", "--logfile", str(tmp_path / "diag.log")])

        assert code == ExitCode.SERVER


class TestRun:

    def test_serves_until_shutdown(self, tmp_path, monkeypatch):
        """A full run: start, answer a request, shut down, exit 0."""
        seen = {}

        def fake_await_shutdown(server):
            seen["state"] = server.state
            seen["response"] = fetch(server, "/hello")
            server.shutdown(timeout=1.0)
            seen["final"] = server.state
            return "cancelled"

        monkeypatch.setattr(cli, "await_shutdown", fake_await_shutdown)
        logfile = tmp_path / "diag.log"

        code = cli.main([
            "--addr", "127.0.0.1:0",
            "--logfile", str(logfile),
            "--logtype", "json",
            "--loglevel", "debug",
            "--shutdown-timeout", "1",
        ])

        assert code == 0
        assert seen["state"] == ServerState.SERVING
        assert seen["response"].status == 200
        assert seen["response"].text == "hello\n"
        assert seen["final"] == ServerState.STOPPED

        log = logfile.read_text()
        assert "loaded templates" in log
        assert "started server" in log
        assert "request completed" in log
