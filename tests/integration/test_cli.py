"""
Integration tests for the kindle command line.

Uses click's CliRunner; commands that would start real daemons are not
invoked here.
"""

import os
import signal
import socket
import threading
import time

import pytest
from click.testing import CliRunner

from kindle import __version__
from kindle.cli.main import cli
from kindle.config import KindleConfig
from kindle.services import build_sequencer
from kindle.state import FileMarkerStore, OnceGuard


@pytest.fixture
def runner():
    return CliRunner()


def unused_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestBasics:
    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        for command in ("bootstrap", "plan", "wait", "markers", "setup"):
            assert command in result.output

    def test_unknown_service(self, runner):
        result = runner.invoke(cli, ["bootstrap", "redis"])

        assert result.exit_code == 2

    def test_bad_configuration_exits_non_zero(self, runner):
        result = runner.invoke(
            cli, ["bootstrap", "nginx"], env={"KINDLE_PROBE_TIMEOUT": "later"}
        )

        assert result.exit_code == 1


class TestBootstrap:
    """Exit status of `kindle bootstrap` as the container sees it."""

    def test_unreachable_database_exits_non_zero(self, runner, monkeypatch, config, transport):
        monkeypatch.setattr(KindleConfig, "from_env", classmethod(lambda cls: config))
        monkeypatch.setattr(
            "kindle.cli.main.build_sequencer",
            lambda service, config, state_db=None: build_sequencer(
                service, config, transport=transport, state_db=state_db
            ),
        )
        config.db_host, config.db_port = "127.0.0.1", unused_port()

        result = runner.invoke(cli, ["bootstrap", "wordpress"])

        assert result.exit_code == 1
        assert transport.exec_argv is None
        assert transport.ran("wp") == []
        assert not os.path.exists(os.path.join(config.wordpress.webroot, ".wordpress-installed.done"))


class TestPlan:
    def test_plan_nginx(self, runner, tmp_path):
        env = {"DOMAIN_NAME": "example.org", "KINDLE_SECRETS_DIR": str(tmp_path)}

        result = runner.invoke(cli, ["plan", "nginx"], env=env)

        assert result.exit_code == 0
        assert "Service: nginx" in result.output
        assert "tcp://wordpress:9000" in result.output
        assert "exec:config-test" in result.output
        assert "nginx -g daemon off;" in result.output


class TestWait:
    def test_ready_endpoint(self, runner):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            port = server.getsockname()[1]
            result = runner.invoke(cli, ["wait", f"127.0.0.1:{port}", "--timeout", "2"])
        finally:
            server.close()

        assert result.exit_code == 0

    def test_timeout_exits_non_zero(self, runner):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        result = runner.invoke(
            cli, ["wait", f"127.0.0.1:{port}", "--timeout", "0.2", "--interval", "0.05"]
        )

        assert result.exit_code == 1

    @pytest.mark.parametrize("option", [["--timeout", "0"], ["--interval=-1"]])
    def test_non_positive_durations_are_rejected(self, runner, option):
        result = runner.invoke(cli, ["wait", "127.0.0.1:1"] + option)

        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_sigterm_stops_the_wait(self, runner):
        timer = threading.Timer(0.2, os.kill, (os.getpid(), signal.SIGTERM))
        timer.start()

        start = time.monotonic()
        try:
            result = runner.invoke(cli, ["wait", f"127.0.0.1:{unused_port()}", "--timeout", "20"])
        finally:
            timer.cancel()

        assert result.exit_code == 128 + signal.SIGTERM
        assert time.monotonic() - start < 10

    def test_endpoint_needs_port(self, runner):
        result = runner.invoke(cli, ["wait", "mariadb"])

        assert result.exit_code == 2


class TestMarkers:
    def test_list_and_reset(self, runner, tmp_path):
        OnceGuard(FileMarkerStore(str(tmp_path))).mark_done("wordpress-installed")

        result = runner.invoke(cli, ["markers", "list", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "wordpress-installed" in result.output

        result = runner.invoke(
            cli, ["markers", "reset", "wordpress-installed", "--dir", str(tmp_path), "--yes"]
        )
        assert result.exit_code == 0
        assert "reset" in result.output
        assert not (tmp_path / ".wordpress-installed.done").exists()

    def test_reset_by_service(self, runner, tmp_path):
        OnceGuard(FileMarkerStore(str(tmp_path))).mark_done("mariadb-initialized")

        result = runner.invoke(
            cli, ["markers", "reset", "--service", "mariadb", "--dir", str(tmp_path)], input="y\n"
        )

        assert result.exit_code == 0
        assert not (tmp_path / ".mariadb-initialized.done").exists()

    def test_reset_declined(self, runner, tmp_path):
        OnceGuard(FileMarkerStore(str(tmp_path))).mark_done("a")

        result = runner.invoke(cli, ["markers", "reset", "a", "--dir", str(tmp_path)], input="n\n")

        assert "Aborted" in result.output
        assert (tmp_path / ".a.done").exists()

    def test_list_empty_sqlite(self, runner, tmp_path):
        result = runner.invoke(cli, ["markers", "list", "--state-db", str(tmp_path / "state.db")])

        assert result.exit_code == 0
        assert "No markers found" in result.output

    def test_store_required(self, runner):
        result = runner.invoke(cli, ["markers", "list"], env={"KINDLE_STATE_DB": None})

        assert result.exit_code == 2


class TestSetup:
    def test_secrets(self, runner, tmp_path):
        result = runner.invoke(cli, ["setup", "secrets", "--dir", str(tmp_path / "secrets")])

        assert result.exit_code == 0
        assert "db_root_password.txt" in result.output
        password = (tmp_path / "secrets" / "db_root_password.txt").read_text().strip()
        assert password not in result.output

    def test_env_and_data(self, runner, tmp_path):
        env_file = tmp_path / "srcs" / ".env"
        env_file.parent.mkdir()
        env_file.write_text(f"DATA_PATH={tmp_path / 'data'}\n")

        result = runner.invoke(cli, ["setup", "env", "--file", str(env_file)])
        assert result.exit_code == 0
        assert f"DATA_PATH={tmp_path / 'data'}" in result.output

        result = runner.invoke(cli, ["setup", "data", "--file", str(env_file)])
        assert result.exit_code == 0
        assert (tmp_path / "data" / "mariadb").is_dir()
        assert (tmp_path / "data" / "wordpress").is_dir()
