"""CLI tests for the `sockonsole` command group."""

from __future__ import annotations

import os
import socket
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from sockonsole.__main__ import cli
from sockonsole.relay.process import ProcessExitedError, ProcessSpawnError
from sockonsole.relay.session import SessionEndReason, SessionError, SessionOutcome

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="Unix sockets only")


@pytest.fixture
def runtime_dir(monkeypatch, short_tmp):
    monkeypatch.setenv("SOCKONSOLE_RUNTIME_DIR", str(short_tmp))
    return short_tmp


@pytest.fixture
def config_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("SOCKONSOLE_CONFIG_DIR", str(tmp_path))
    return tmp_path


def test_version_flag() -> None:
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert result.output.startswith("sockonsole ")


def test_no_subcommand_prints_help() -> None:
    result = CliRunner().invoke(cli, [])

    assert result.exit_code == 0
    for command in ("start", "stop", "status", "connect", "config"):
        assert command in result.output


def test_stop_without_relay_exits_1(runtime_dir) -> None:
    result = CliRunner().invoke(cli, ["stop"])

    assert result.exit_code == 1
    assert "Relay is not running." in result.output


def test_stop_sends_token_to_control_endpoint(runtime_dir) -> None:
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as listener:
        listener.bind(str(runtime_dir / "control.sock"))
        listener.listen(1)

        result = CliRunner().invoke(cli, ["stop"])
        conn, _ = listener.accept()
        with conn:
            data = conn.recv(16)

    assert result.exit_code == 0
    assert "Stop token sent." in result.output
    assert data == b"stop"


def test_status_without_relay_exits_1(runtime_dir) -> None:
    result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 1
    assert "Relay is not running." in result.output


def test_status_reports_endpoints_and_pid(runtime_dir) -> None:
    (runtime_dir / "relay.instance.info").write_text(f"2468\n{socket.gethostname()}\n")
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as listener:
        listener.bind(str(runtime_dir / "control.sock"))
        listener.listen(1)

        result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "Relay is running." in result.output
    assert "2468" in result.output
    assert str(runtime_dir / "downlink.sock") in result.output
    assert str(runtime_dir / "uplink.sock") in result.output


def test_status_reports_stopping_relay_from_live_lock_holder(runtime_dir) -> None:
    (runtime_dir / "relay.instance.info").write_text(f"{os.getpid()}\n{socket.gethostname()}\n")

    result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 0
    assert "Relay is stopping." in result.output
    assert str(os.getpid()) in result.output


def test_status_ignores_dead_lock_holder(runtime_dir) -> None:
    (runtime_dir / "relay.instance.info").write_text(f"2468\n{socket.gethostname()}\n")

    with patch("sockonsole.relay.instance_lock._pid_alive", return_value=False):
        result = CliRunner().invoke(cli, ["status"])

    assert result.exit_code == 1
    assert "Relay is not running." in result.output


def test_connect_without_relay_exits_1(runtime_dir) -> None:
    result = CliRunner().invoke(cli, ["connect"], input="echo hi\n")

    assert result.exit_code == 1
    assert "Cannot connect to relay" in result.output


def test_start_rejects_invalid_config(config_dir, tmp_path) -> None:
    config_path = tmp_path / "bad.toml"
    config_path.write_text("response_timeout = -5\n")

    with patch("sockonsole.cli.commands.relay.setup_logging"):
        result = CliRunner().invoke(cli, ["start", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Invalid config file" in result.output


def test_start_reports_spawn_failure(config_dir, runtime_dir) -> None:
    error = ProcessSpawnError("PROCESS_NOT_FOUND", ["/nonexistent/shell"], "missing")
    with (
        patch("sockonsole.cli.commands.relay.setup_logging"),
        patch("sockonsole.cli.commands.relay._run_relay", AsyncMock(side_effect=error)),
    ):
        result = CliRunner().invoke(cli, ["start"])

    assert result.exit_code == 1
    assert "Failed to start managed process" in result.output
    assert "/nonexistent/shell" in result.output


def test_start_exits_nonzero_on_fatal_session_error(config_dir, runtime_dir) -> None:
    error = SessionError(SessionOutcome(2, SessionEndReason.PROCESS_INPUT_ERROR, "pipe"))
    with (
        patch("sockonsole.cli.commands.relay.setup_logging"),
        patch("sockonsole.cli.commands.relay._run_relay", AsyncMock(side_effect=error)),
    ):
        result = CliRunner().invoke(cli, ["start"])

    assert result.exit_code == 1
    assert "process_input_error" in result.output


def test_start_exits_nonzero_when_managed_process_exits(config_dir, runtime_dir) -> None:
    error = ProcessExitedError(3)
    with (
        patch("sockonsole.cli.commands.relay.setup_logging"),
        patch("sockonsole.cli.commands.relay._run_relay", AsyncMock(side_effect=error)),
    ):
        result = CliRunner().invoke(cli, ["start"])

    assert result.exit_code == 1
    assert "Managed process exited with code 3" in result.output


def test_start_runs_host_until_it_stops(config_dir, runtime_dir) -> None:
    host = MagicMock()
    host.run = AsyncMock(return_value=2)
    with (
        patch("sockonsole.cli.commands.relay.setup_logging"),
        patch("sockonsole.cli.commands.relay.RelayHost", return_value=host),
    ):
        result = CliRunner().invoke(cli, ["start"])

    assert result.exit_code == 0
    assert "Relay stopped after 2 session(s)." in result.output
    host.run.assert_awaited_once()


def test_start_reports_session_count_on_clean_stop(config_dir, runtime_dir) -> None:
    with (
        patch("sockonsole.cli.commands.relay.setup_logging") as mock_logging,
        patch("sockonsole.cli.commands.relay._run_relay", AsyncMock(return_value=3)),
    ):
        result = CliRunner().invoke(cli, ["start", "--log-level", "debug"])

    assert result.exit_code == 0
    assert "Relay stopped after 3 session(s)." in result.output
    mock_logging.assert_called_once_with("DEBUG")


def test_config_init_writes_defaults(config_dir) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "init"])

    assert result.exit_code == 0
    assert (config_dir / "config.toml").exists()
    assert 'command = "/bin/sh"' in (config_dir / "config.toml").read_text()


def test_config_init_refuses_to_overwrite_without_force(config_dir) -> None:
    (config_dir / "config.toml").write_text("response_timeout = 7\n")
    runner = CliRunner()

    refused = runner.invoke(cli, ["config", "init"])
    forced = runner.invoke(cli, ["config", "init", "--force"])

    assert refused.exit_code == 1
    assert "--force" in refused.output
    assert forced.exit_code == 0
    assert "response_timeout = 100" in (config_dir / "config.toml").read_text()


def test_config_show_prints_effective_settings(config_dir) -> None:
    (config_dir / "config.toml").write_text("response_timeout = 250\n")

    result = CliRunner().invoke(cli, ["config", "show"])

    assert result.exit_code == 0
    assert "response_timeout = 250" in result.output
    assert 'command = "/bin/sh"' in result.output


def test_config_show_without_file_uses_defaults(config_dir) -> None:
    result = CliRunner().invoke(cli, ["config", "show"])

    assert result.exit_code == 0
    assert "not found, using defaults" in result.output


def test_config_show_rejects_invalid_file(config_dir) -> None:
    (config_dir / "config.toml").write_text("not toml = = =\n")

    result = CliRunner().invoke(cli, ["config", "show"])

    assert result.exit_code == 1
    assert "Cannot read config file" in result.output
