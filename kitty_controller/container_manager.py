"""
Container engine adapter for compose-based launches.

This module wraps the docker CLI invocations the launcher needs: listing
live containers, bringing a compose project up or down, reading memory
usage and locating the engine executable. Every call goes through the
ProcessRunner as an argument vector, never a shell string.
"""

import logging
import os
from pathlib import Path

from kitty_common.errors import KittyError, ProcessNonZeroExit
from kitty_common.models import ContainerRecord

from .process_runner import DISCOVERY_TIMEOUT, ProcessRunner

logger = logging.getLogger(__name__)

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"

PS_FORMAT = (
    "{{.Names}}|{{.Image}}|{{.Status}}|"
    '{{.Label "' + COMPOSE_PROJECT_LABEL + '"}}|{{.RunningFor}}'
)

STATS_FORMAT = "{{.Name}}|{{.MemUsage}}"


def parse_ps_line(line: str) -> ContainerRecord | None:
    """
    Parse one row of `docker ps` output in PS_FORMAT.

    Rows with fewer than three columns (name, image, status) are rejected;
    the project and uptime columns are optional.

    Args:
        line: Pipe-delimited row

    Returns:
        ContainerRecord, or None if the row is malformed
    """
    parts = line.strip().split("|")
    if len(parts) < 3 or len(parts) > 5 or not parts[0]:
        return None

    name, image, status = parts[0], parts[1], parts[2]
    project = parts[3] if len(parts) > 3 and parts[3] else None
    uptime = parts[4] if len(parts) > 4 and parts[4] else None
    return ContainerRecord(
        name=name, image=image, status=status, project=project, uptime=uptime
    )


class ContainerEngine:
    """
    Docker CLI operations used by the launcher.

    Lifecycle commands (`up`, `down`) wait without a bound, trusting docker
    to terminate; only executable discovery is time-limited.
    """

    def __init__(self, runner: ProcessRunner, docker: str = "docker"):
        """
        Initialize the engine adapter.

        Args:
            runner: Process runner for all invocations
            docker: docker executable name or path
        """
        self.runner = runner
        self.docker = docker

    async def list_containers(self) -> list[ContainerRecord]:
        """
        List live containers.

        Returns:
            One ContainerRecord per well-formed output row, in engine order

        Raises:
            ProcessNonZeroExit: If `docker ps` fails
        """
        argv = [self.docker, "ps", "--format", PS_FORMAT]
        result = await self.runner.capture(argv)
        if not result.ok:
            raise ProcessNonZeroExit(argv, result.returncode, "Failed to list containers")

        records = []
        for line in result.text().splitlines():
            if not line.strip():
                continue
            record = parse_ps_line(line)
            if record is None:
                logger.debug(f"Skipping malformed docker ps row: {line!r}")
                continue
            records.append(record)
        return records

    async def memory_usage(self) -> dict[str, str]:
        """
        Read current memory usage per container name.

        Returns:
            Mapping of container name to the engine's MemUsage text

        Raises:
            ProcessNonZeroExit: If `docker stats` fails
        """
        argv = [self.docker, "stats", "--no-stream", "--format", STATS_FORMAT]
        result = await self.runner.capture(argv)
        if not result.ok:
            raise ProcessNonZeroExit(argv, result.returncode, "Failed to read memory usage")

        usage = {}
        for line in result.text().splitlines():
            name, sep, memory = line.strip().partition("|")
            if sep and name:
                usage[name] = memory.strip()
        return usage

    async def compose_up(
        self, project_id: str, env_file: Path, compose_file: Path
    ) -> int:
        """
        Bring a compose project up in the background.

        Returns:
            The exit code of `docker compose up`
        """
        return await self.runner.execute(
            self.compose_up_argv(project_id, env_file, compose_file),
            cwd=compose_file.parent,
        )

    def compose_up_argv(
        self, project_id: str, env_file: Path, compose_file: Path
    ) -> list[str]:
        return [
            self.docker,
            "compose",
            "-p",
            project_id,
            "--env-file",
            str(env_file),
            "-f",
            str(compose_file),
            "up",
            "-d",
        ]

    async def compose_down(self, project_id: str) -> int:
        """
        Tear a compose project down by name.

        Returns:
            The exit code of `docker compose down`; non-zero for an already
            absent project is expected
        """
        return await self.runner.execute(
            [self.docker, "compose", "-p", project_id, "down"]
        )

    async def locate_executable(self) -> str | None:
        """
        Locate the engine executable on the PATH.

        Uses `where` on Windows and `which` elsewhere, bounded by
        DISCOVERY_TIMEOUT.

        Returns:
            The first path reported, or None if it could not be found
        """
        if os.name == "nt":
            argv = ["cmd", "/c", "where", f"{self.docker}.exe"]
        else:
            argv = ["which", self.docker]

        try:
            result = await self.runner.capture(argv, timeout=DISCOVERY_TIMEOUT)
        except KittyError as e:
            logger.warning(f"Error detecting docker path: {e}")
            return None

        if not result.ok:
            return None
        for line in result.text().splitlines():
            if line.strip():
                return line.strip()
        return None
