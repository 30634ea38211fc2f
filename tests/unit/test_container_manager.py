"""
Unit tests for kitty_controller.container_manager module.

Tests docker CLI argument vectors and output parsing.
"""

from unittest.mock import patch

import pytest

from kitty_common.errors import ProcessInterrupted, ProcessNonZeroExit
from kitty_controller.container_manager import (
    PS_FORMAT,
    ContainerEngine,
    parse_ps_line,
)
from kitty_controller.process_runner import DISCOVERY_TIMEOUT


def ps_output(*rows: str) -> bytes:
    return "".join(f"{row}\n" for row in rows).encode()


class TestParsePsLine:
    """Test suite for parse_ps_line()."""

    def test_full_row(self):
        record = parse_ps_line("web_1|myimage:1.0|Up 2 minutes|myproject|2 minutes")

        assert record.name == "web_1"
        assert record.image == "myimage:1.0"
        assert record.status == "Up 2 minutes"
        assert record.project == "myproject"
        assert record.uptime == "2 minutes"

    def test_container_without_compose_label(self):
        record = parse_ps_line("solo|redis:7|Up 5 seconds||5 seconds ago")

        assert record.project is None
        assert record.uptime == "5 seconds ago"

    def test_three_columns_is_enough(self):
        record = parse_ps_line("web_1|img|Up 1 second")

        assert record.name == "web_1"
        assert record.project is None
        assert record.uptime is None

    @pytest.mark.parametrize(
        "line",
        ["", "web_1", "web_1|img", "|img|Up", "a|b|c|d|e|f"],
    )
    def test_malformed_rows_rejected(self, line):
        assert parse_ps_line(line) is None


class TestListContainers:
    """Test suite for ContainerEngine.list_containers."""

    @pytest.mark.asyncio
    async def test_parses_rows_in_engine_order(self, runner):
        runner.on(
            "docker",
            "ps",
            stdout=ps_output(
                "web_1|nginx:1.25|Up 2 minutes|shop-1-0|2 minutes",
                "garbage",
                "",
                "db_1|postgres:16|Restarting (1) 3 seconds ago|shop-1-0|1 hour",
            ),
        )
        engine = ContainerEngine(runner)

        records = await engine.list_containers()

        assert [r.name for r in records] == ["web_1", "db_1"]
        assert runner.calls[0].argv == ["docker", "ps", "--format", PS_FORMAT]

    def test_format_requests_project_label(self):
        assert '{{.Label "com.docker.compose.project"}}' in PS_FORMAT

    @pytest.mark.asyncio
    async def test_failed_listing_raises(self, runner):
        runner.on("docker", "ps", returncode=1)
        engine = ContainerEngine(runner)

        with pytest.raises(ProcessNonZeroExit) as exc_info:
            await engine.list_containers()

        assert exc_info.value.returncode == 1


class TestMemoryUsage:
    @pytest.mark.asyncio
    async def test_maps_names_to_usage(self, runner):
        runner.on(
            "docker",
            "stats",
            stdout=ps_output("web_1|12.5MiB / 1.9GiB", "db_1|200MiB / 1.9GiB", "bad"),
        )
        engine = ContainerEngine(runner)

        usage = await engine.memory_usage()

        assert usage == {"web_1": "12.5MiB / 1.9GiB", "db_1": "200MiB / 1.9GiB"}
        assert runner.calls[0].argv[:3] == ["docker", "stats", "--no-stream"]


class TestCompose:
    """Test suite for compose up/down invocations."""

    @pytest.mark.asyncio
    async def test_compose_up_argv_and_cwd(self, runner, tmp_path):
        engine = ContainerEngine(runner, docker="/usr/bin/docker")
        compose_file = tmp_path / "docker-compose-web.yml"
        env_file = tmp_path / ".env"

        code = await engine.compose_up("web-1-0", env_file, compose_file)

        assert code == 0
        call = runner.calls[0]
        assert call.argv == [
            "/usr/bin/docker",
            "compose",
            "-p",
            "web-1-0",
            "--env-file",
            str(env_file),
            "-f",
            str(compose_file),
            "up",
            "-d",
        ]
        assert call.cwd == tmp_path
        assert call.timeout is None

    @pytest.mark.asyncio
    async def test_compose_down_returns_exit_code(self, runner):
        runner.on("docker", "compose", returncode=1)
        engine = ContainerEngine(runner)

        code = await engine.compose_down("gone-1-0")

        assert code == 1
        assert runner.calls[0].argv == ["docker", "compose", "-p", "gone-1-0", "down"]


class TestLocateExecutable:
    """Test suite for ContainerEngine.locate_executable."""

    @pytest.mark.asyncio
    async def test_returns_first_path_with_bounded_wait(self, runner):
        runner.on("which", stdout=b"/usr/local/bin/docker\n/usr/bin/docker\n")
        engine = ContainerEngine(runner)

        with patch("kitty_controller.container_manager.os.name", "posix"):
            path = await engine.locate_executable()

        assert path == "/usr/local/bin/docker"
        assert runner.calls[0].argv == ["which", "docker"]
        assert runner.calls[0].timeout == DISCOVERY_TIMEOUT

    @pytest.mark.asyncio
    async def test_windows_uses_where(self, runner):
        runner.on("cmd", stdout=b"C:\\Docker\\docker.exe\r\n")
        engine = ContainerEngine(runner)

        with patch("kitty_controller.container_manager.os.name", "nt"):
            path = await engine.locate_executable()

        assert path == "C:\\Docker\\docker.exe"
        assert runner.calls[0].argv == ["cmd", "/c", "where", "docker.exe"]

    @pytest.mark.asyncio
    async def test_not_found(self, runner):
        runner.on("which", returncode=1)
        engine = ContainerEngine(runner)

        with patch("kitty_controller.container_manager.os.name", "posix"):
            assert await engine.locate_executable() is None

    @pytest.mark.asyncio
    async def test_timeout_is_not_fatal(self, runner):
        runner.on("which", error=ProcessInterrupted(["which", "docker"], DISCOVERY_TIMEOUT))
        engine = ContainerEngine(runner)

        with patch("kitty_controller.container_manager.os.name", "posix"):
            assert await engine.locate_executable() is None

