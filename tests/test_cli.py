"""Tests for CLI commands - configure, settings, server create-token."""

import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from pomosync.client.cli import cli
from pomosync.client.cli.config import get_server_config, get_tick_interval
from pomosync.client.cli.timer import format_clock, format_status
from pomosync.client.timer.state import TimerState
from pomosync.core.types import TimerMode, TimerStatus
from pomosync.server.database import Database


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path):
    """Point the CLI at a temporary config directory."""
    config = tmp_path / ".pomosync"
    with patch("pomosync.client.cli.config.get_config_dir", return_value=config):
        yield config


class TestConfigureCommand:
    """Tests for 'pomosync configure' command."""

    def test_configure_saves_config(self, runner: CliRunner, config_dir: Path) -> None:
        """Configure should verify the token and save the config."""
        with patch("httpx.get", return_value=httpx.Response(200, json=[])) as mock_get:
            result = runner.invoke(
                cli, ["configure", "--server", "http://localhost:8000/", "--token", "ps_tok"]
            )
        assert result.exit_code == 0, result.output
        assert "Configuration saved." in result.output
        assert mock_get.call_args.kwargs["headers"] == {"Authorization": "Bearer ps_tok"}

        saved = json.loads((config_dir / "config.json").read_text())
        assert saved == {
            "server_url": "http://localhost:8000",
            "token": "ps_tok",
            "verify_ssl": True,
        }
        server_config = get_server_config()
        assert server_config is not None
        assert server_config.ws_url == "ws://localhost:8000/ws/timer/ps_tok"

    def test_configure_invalid_token(self, runner: CliRunner, config_dir: Path) -> None:
        """Configure should fail on 401."""
        with patch("httpx.get", return_value=httpx.Response(401)):
            result = runner.invoke(
                cli, ["configure", "--server", "http://localhost:8000", "--token", "bad"]
            )
        assert result.exit_code == 1
        assert "Invalid token" in result.output
        assert not (config_dir / "config.json").exists()

    def test_configure_unreachable(self, runner: CliRunner, config_dir: Path) -> None:
        """Configure should fail when the server cannot be reached."""
        with patch("httpx.get", side_effect=httpx.ConnectError("refused")):
            result = runner.invoke(
                cli, ["configure", "--server", "http://localhost:1", "--token", "t"]
            )
        assert result.exit_code == 1
        assert "Cannot connect" in result.output

    def test_configure_skip_check(self, runner: CliRunner, config_dir: Path) -> None:
        """--skip-check saves without a request."""
        with patch("httpx.get") as mock_get:
            result = runner.invoke(
                cli,
                [
                    "configure",
                    "--server", "https://timer.example.com",
                    "--token", "t",
                    "--skip-check",
                    "--no-verify-ssl",
                ],
            )
        assert result.exit_code == 0
        mock_get.assert_not_called()
        server_config = get_server_config()
        assert server_config is not None
        assert server_config.verify_ssl is False


class TestConfigHelpers:
    """Tests for config helpers."""

    def test_not_configured(self, config_dir: Path) -> None:
        """No file means no server config."""
        assert get_server_config() is None

    def test_tick_interval(self, config_dir: Path) -> None:
        """Configured interval overrides the default."""
        assert get_tick_interval() == 0.25
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"tick_interval": 0.5}))
        assert get_tick_interval() == 0.5


class TestSettingsCommand:
    """Tests for 'pomosync settings' command."""

    def test_show_defaults(self, runner: CliRunner, config_dir: Path) -> None:
        """Settings without options shows the defaults."""
        result = runner.invoke(cli, ["settings"])
        assert result.exit_code == 0
        assert "Work:        25 min" in result.output
        assert "Break:       5 min" in result.output
        assert "Repetitions: 4" in result.output

    def test_change_and_persist(self, runner: CliRunner, config_dir: Path) -> None:
        """Changes are saved to timer.json."""
        result = runner.invoke(
            cli,
            ["settings", "-w", "50", "-b", "0", "-r", "2", "-p", "proj-1", "--tag", "a", "--tag", "b"],
        )
        assert result.exit_code == 0
        saved = json.loads((config_dir / "timer.json").read_text())
        assert saved["work_duration_min"] == 50
        assert saved["break_duration_min"] == 0
        assert saved["repetitions"] == 2
        assert saved["project_id"] == "proj-1"
        assert saved["tags"] == ["a", "b"]

        shown = runner.invoke(cli, ["settings"])
        assert "Work:        50 min" in shown.output
        assert "Tags:        a, b" in shown.output

    def test_invalid_value(self, runner: CliRunner, config_dir: Path) -> None:
        """Out-of-range values fail without saving."""
        result = runner.invoke(cli, ["settings", "-w", "0"])
        assert result.exit_code == 1
        assert "Error: work must be at least 1 minute" in result.output
        assert not (config_dir / "timer.json").exists()

    def test_clear(self, runner: CliRunner, config_dir: Path) -> None:
        """--clear removes attribution but keeps durations."""
        runner.invoke(cli, ["settings", "-w", "40", "-p", "proj-1", "-n", "notes"])
        result = runner.invoke(cli, ["settings", "--clear"])
        assert result.exit_code == 0
        saved = json.loads((config_dir / "timer.json").read_text())
        assert saved["project_id"] is None
        assert saved["notes"] == ""
        assert saved["work_duration_min"] == 40


class TestServerCommands:
    """Tests for 'pomosync server' commands."""

    def test_create_token(self, runner: CliRunner, tmp_path: Path) -> None:
        """create-token prints a token that validates for the user."""
        db_path = tmp_path / "server.db"
        result = runner.invoke(
            cli, ["server", "create-token", "alice", "--name", "laptop", "--db-path", str(db_path)]
        )
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "Token for alice:"
        raw_token = lines[1]

        db = Database(db_path)
        try:
            token = db.validate_token(raw_token)
            assert token is not None
            assert token.name == "laptop"
            assert db.get_user(token.user_id).name == "alice"
        finally:
            db.close()

    def test_create_token_same_user(self, runner: CliRunner, tmp_path: Path) -> None:
        """Tokens for the same name share one user."""
        db_path = tmp_path / "server.db"
        tokens = []
        for _ in range(2):
            result = runner.invoke(
                cli, ["server", "create-token", "alice", "--db-path", str(db_path)]
            )
            tokens.append(result.output.splitlines()[1])

        db = Database(db_path)
        try:
            first, second = (db.validate_token(t) for t in tokens)
            assert first.user_id == second.user_id
        finally:
            db.close()


class TestTimerCommands:
    """Tests for 'pomosync follow' and the status line."""

    def test_follow_requires_config(self, runner: CliRunner, config_dir: Path) -> None:
        """follow exits when no server is configured."""
        result = runner.invoke(cli, ["follow"])
        assert result.exit_code == 1
        assert "Not configured" in result.output

    def test_version(self, runner: CliRunner) -> None:
        """--version prints the package version."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "pomosync" in result.output

    @pytest.mark.parametrize(
        "ms, expected",
        [(0, "00:00"), (61_500, "01:01"), (25 * 60_000, "25:00"), (3_723_000, "1:02:03")],
    )
    def test_format_clock(self, ms: int, expected: str) -> None:
        """Clock uses MM:SS, with hours when needed."""
        assert format_clock(ms) == expected

    def test_format_idle(self) -> None:
        """Idle shows just the status."""
        assert format_status(TimerState()) == "idle"

    def test_format_running_work(self) -> None:
        """Running work shows repetition, time left and project."""
        state = TimerState(
            status=TimerStatus.RUNNING,
            elapsed_ms=12 * 60_000 + 30_000,
            project_id="proj-1",
        )
        assert format_status(state) == "work 1/4  12:30 left  [proj-1]"

    def test_format_paused_break(self) -> None:
        """Paused breaks are marked."""
        state = TimerState(
            status=TimerStatus.PAUSED,
            mode=TimerMode.BREAK,
            current_repetition=2,
            elapsed_ms=50_000,
        )
        assert format_status(state) == "break 2/4  04:10 left (paused)"

    def test_format_infinite(self) -> None:
        """Infinite work counts up."""
        state = TimerState(
            status=TimerStatus.RUNNING,
            infinite_mode=True,
            repetitions=1,
            elapsed_ms=37 * 60_000 + 2000,
        )
        assert format_status(state) == "work 1/1  37:02 elapsed"
