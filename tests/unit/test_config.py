"""
Unit tests for configuration loading and the controller entrypoint helpers.
"""

import logging

import pytest

from kitty_controller.__main__ import (
    build_config,
    configure_logging,
    get_log_file,
    get_port,
    parse_args,
)
from kitty_controller.config import DEFAULT_REPO_URL, LauncherConfig

KITTY_VARS = [
    "KITTY_DEV_MODE",
    "KITTY_REPO_URL",
    "KITTY_BRANCH",
    "KITTY_POLL_INTERVAL",
    "KITTY_DOCKER",
    "KITTY_GIT",
    "KITTY_COLLECT_MEMORY",
    "KITTY_GRACE_PERIOD",
    "KITTY_SCRATCH_ROOT",
    "KITTY_PORT",
    "KITTY_LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in KITTY_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Test suite for LauncherConfig.from_env."""

    def test_defaults(self):
        config = LauncherConfig.from_env()

        assert config == LauncherConfig()
        assert config.repo_url == DEFAULT_REPO_URL
        assert config.poll_interval == 5.0
        assert config.grace_period == 10.0
        assert config.dev_mode is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("KITTY_DEV_MODE", "true")
        monkeypatch.setenv("KITTY_REPO_URL", "https://example.com/c.git")
        monkeypatch.setenv("KITTY_BRANCH", "release")
        monkeypatch.setenv("KITTY_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("KITTY_COLLECT_MEMORY", "1")
        monkeypatch.setenv("KITTY_SCRATCH_ROOT", "/var/tmp/kitty")

        config = LauncherConfig.from_env()

        assert config.dev_mode is True
        assert config.repo_url == "https://example.com/c.git"
        assert config.branch == "release"
        assert config.poll_interval == 2.5
        assert config.collect_memory is True
        assert config.scratch_root == "/var/tmp/kitty"

    @pytest.mark.parametrize("raw", ["abc", "0", "-3"])
    def test_invalid_interval_falls_back(self, monkeypatch, caplog, raw):
        monkeypatch.setenv("KITTY_POLL_INTERVAL", raw)

        with caplog.at_level(logging.WARNING):
            config = LauncherConfig.from_env()

        assert config.poll_interval == 5.0
        assert "KITTY_POLL_INTERVAL" in caplog.text

    def test_flag_false_values(self, monkeypatch):
        monkeypatch.setenv("KITTY_DEV_MODE", "no")
        assert LauncherConfig.from_env().dev_mode is False


class TestBuildConfig:
    """Command-line arguments override the environment."""

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("KITTY_BRANCH", "env-branch")
        monkeypatch.setenv("KITTY_POLL_INTERVAL", "7")

        config = build_config(parse_args(["--dev", "--branch", "cli-branch", "--interval", "1.5"]))

        assert config.dev_mode is True
        assert config.branch == "cli-branch"
        assert config.poll_interval == 1.5

    def test_env_used_when_no_cli_value(self, monkeypatch):
        monkeypatch.setenv("KITTY_BRANCH", "env-branch")

        config = build_config(parse_args([]))

        assert config.branch == "env-branch"
        assert config.dev_mode is False

    def test_invalid_cli_values_keep_env(self, monkeypatch):
        monkeypatch.setenv("KITTY_POLL_INTERVAL", "7")

        config = build_config(parse_args(["--interval", "0", "--grace-period", "-1"]))

        assert config.poll_interval == 7.0
        assert config.grace_period == 10.0


class TestServerSettings:
    def test_port_precedence(self, monkeypatch):
        assert get_port(parse_args([])) == 8765
        monkeypatch.setenv("KITTY_PORT", "9000")
        assert get_port(parse_args([])) == 9000
        assert get_port(parse_args(["--port", "9100"])) == 9100

    def test_invalid_port_env(self, monkeypatch):
        monkeypatch.setenv("KITTY_PORT", "http")
        assert get_port(parse_args([])) == 8765

    def test_log_file_precedence(self, monkeypatch):
        assert get_log_file(parse_args([])) is None
        monkeypatch.setenv("KITTY_LOG_FILE", "/tmp/env.log")
        assert get_log_file(parse_args([])) == "/tmp/env.log"
        assert get_log_file(parse_args(["--log-file", "/tmp/cli.log"])) == "/tmp/cli.log"

    def test_log_file_is_appended(self, tmp_path):
        log_file = tmp_path / "logs" / "activity.log"
        log_file.parent.mkdir()
        log_file.write_text("earlier run\n")
        root = logging.getLogger()
        saved = root.handlers[:]
        saved_level = root.level
        root.handlers.clear()
        try:
            configure_logging("INFO", str(log_file))
            logging.getLogger("kitty_controller.test").info("Started web")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved
            root.setLevel(saved_level)

        lines = log_file.read_text().splitlines()
        assert lines[0] == "earlier run"
        assert lines[1].endswith("kitty_controller.test - INFO - Started web")
