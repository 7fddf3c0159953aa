"""Tests for the command line interface."""

import threading
from pathlib import Path

import pytest

from tailwatch import __version__, cli
from tailwatch.engine import TailEngine


@pytest.fixture
def settings_args(tmp_path: Path) -> list[str]:
    return ["--settings", str(tmp_path / "settings.yaml")]


@pytest.fixture
def engines(monkeypatch) -> list[TailEngine]:
    """Capture engines created by the CLI so tests can stop them."""
    created: list[TailEngine] = []

    class RecordingEngine(TailEngine):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr("tailwatch.cli.TailEngine", RecordingEngine)
    return created


class TestParser:
    def test_follow_options(self) -> None:
        args = cli.build_parser().parse_args(
            ["follow", "/var/log/syslog", "-n", "5", "--interval", "0.1", "--no-watch", "--line-numbers"]
        )

        assert args.command == "follow"
        assert args.file == "/var/log/syslog"
        assert args.lines == 5
        assert args.interval == 0.1
        assert args.no_watch is True
        assert args.line_numbers is True

    def test_serve_options(self) -> None:
        args = cli.build_parser().parse_args(["serve", "--host", "0.0.0.0", "--port", "9000"])

        assert args.command == "serve"
        assert args.host == "0.0.0.0"
        assert args.port == 9000

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--version"])

        assert __version__ in capsys.readouterr().out


class TestLoadSettings:
    def test_log_level_override(self, settings_args: list[str], monkeypatch) -> None:
        monkeypatch.delenv("TAILWATCH_LOG_LEVEL", raising=False)
        args = cli.build_parser().parse_args([*settings_args, "--log-level", "DEBUG", "serve"])

        assert cli.load_settings(args).log_level == "DEBUG"

    def test_env_applied(self, settings_args: list[str], monkeypatch) -> None:
        monkeypatch.setenv("TAILWATCH_PORT", "9100")
        args = cli.build_parser().parse_args([*settings_args, "serve"])

        assert cli.load_settings(args).server_port == 9100


class TestFollow:
    """Tests for ``tailwatch follow``."""

    def test_missing_file_exit_code(self, settings_args: list[str], tmp_path: Path, capsys) -> None:
        code = cli.main([*settings_args, "follow", str(tmp_path / "missing.log"), "--no-watch"])

        assert code == 1
        assert "File not found" in capsys.readouterr().err

    def test_prints_tail_until_stopped(
        self, settings_args: list[str], temp_log_file: Path, engines, capsys
    ) -> None:
        stopper = threading.Timer(0.3, lambda: engines[0].stop())
        stopper.start()
        try:
            code = cli.main(
                [*settings_args, "follow", str(temp_log_file), "-n", "2", "--no-watch", "--line-numbers"]
            )
        finally:
            stopper.cancel()

        assert code == 0
        out = capsys.readouterr().out.splitlines()
        assert out == ["      2  Line 2", "      3  Line 3"]

    def test_prints_appended_lines(
        self, settings_args: list[str], temp_log_file: Path, engines, capsys, append
    ) -> None:
        def writer() -> None:
            append(temp_log_file, "Line 4\n")

        threading.Timer(0.1, writer).start()
        stopper = threading.Timer(0.6, lambda: engines[0].stop())
        stopper.start()
        try:
            code = cli.main(
                [*settings_args, "follow", str(temp_log_file), "-n", "1", "--interval", "0.05", "--no-watch"]
            )
        finally:
            stopper.cancel()

        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["Line 3", "Line 4"]
