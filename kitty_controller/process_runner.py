"""
Process runner for external command execution.

This module spawns one external process at a time (docker, git, which),
forwards its output line-by-line to a log sink as it is produced, and
returns the exit status. A non-zero exit is reported, not raised; callers
decide whether it is an error.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from kitty_common.errors import (
    ProcessInterrupted,
    ProcessLaunchFailure,
    ProcessNonZeroExit,
)

logger = logging.getLogger(__name__)

# Output of external processes goes to its own logger so it can be routed
# (or silenced) separately from the launcher's own messages.
process_logger = logging.getLogger("kitty_controller.process")

LogSink = Callable[[str], None]

# Bounded wait for auxiliary discovery calls (locating the engine binary).
DISCOVERY_TIMEOUT = 30.0


def _default_sink(line: str) -> None:
    process_logger.info(line)


@dataclass
class ProcessResult:
    """Outcome of a captured process run."""

    argv: list[str]
    returncode: int
    stdout: bytes = field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


def check_returncode(argv: list[str], returncode: int, message: str = "") -> None:
    """Raise ProcessNonZeroExit if the exit code signals failure."""
    if returncode != 0:
        raise ProcessNonZeroExit(argv, returncode, message)


class ProcessRunner:
    """
    Runs external processes and streams their output.

    The runner does not serialize anything by itself: the absence of
    overlapping invocations is the job of the CommandQueue that calls it.
    """

    def __init__(self, log_sink: LogSink | None = None):
        """
        Initialize the process runner.

        Args:
            log_sink: Callable receiving each output line (without newline).
                      Defaults to the kitty_controller.process logger.
        """
        self.log_sink = log_sink or _default_sink

    async def execute(
        self,
        argv: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> int:
        """
        Run a process with stderr merged into stdout.

        Every line is forwarded to the log sink as soon as it is read.

        Args:
            argv: Argument vector (no shell)
            cwd: Optional working directory
            env: Optional environment overrides on top of the inherited one
            timeout: Optional bounded wait in seconds; lifecycle commands pass None

        Returns:
            The process exit code

        Raises:
            ProcessLaunchFailure: If the process could not be started
            ProcessInterrupted: If the timeout elapsed (the process is killed)
        """
        logger.info(f"$ {' '.join(argv)}")
        process = await self._spawn(
            argv, cwd, env, stderr=asyncio.subprocess.STDOUT
        )

        await self._supervise(
            process, argv, timeout, lambda: self._forward_lines(process.stdout)
        )
        logger.debug(f"{argv[0]} exited with code {process.returncode}")
        return process.returncode

    async def capture(
        self,
        argv: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """
        Run a process keeping its stdout as bytes.

        Stderr is still forwarded line-by-line to the log sink. Used where the
        output is data (blob content, `docker ps` rows) rather than progress.

        Raises:
            ProcessLaunchFailure: If the process could not be started
            ProcessInterrupted: If the timeout elapsed (the process is killed)
        """
        logger.debug(f"$ {' '.join(argv)}")
        process = await self._spawn(argv, cwd, env, stderr=asyncio.subprocess.PIPE)

        chunks: list[bytes] = []

        async def read_all() -> None:
            chunks.append(await process.stdout.read())

        async def drain() -> None:
            await asyncio.gather(read_all(), self._forward_lines(process.stderr))

        await self._supervise(process, argv, timeout, drain)
        return ProcessResult(
            argv=list(argv), returncode=process.returncode, stdout=b"".join(chunks)
        )

    async def _spawn(
        self,
        argv: list[str],
        cwd: Path | str | None,
        env: dict[str, str] | None,
        stderr: int,
    ) -> asyncio.subprocess.Process:
        merged_env = {**os.environ, **env} if env else None
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd is not None else None,
                env=merged_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=stderr,
            )
        except OSError as e:
            raise ProcessLaunchFailure(argv, str(e)) from e

    async def _supervise(
        self,
        process: asyncio.subprocess.Process,
        argv: list[str],
        timeout: float | None,
        reader: Callable[[], Awaitable[None]],
    ) -> None:
        async def run() -> None:
            await reader()
            await process.wait()

        try:
            if timeout is None:
                await run()
            else:
                await asyncio.wait_for(run(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{argv[0]} timed out after {timeout}s, killing it")
            await self._kill(process)
            raise ProcessInterrupted(argv, timeout) from None
        except BaseException:
            # Nothing may outlive the task that owns it, whatever ended it
            await self._kill(process)
            raise

    async def _forward_lines(self, stream: asyncio.StreamReader) -> None:
        """
        Forward every line of `stream` to the log sink until EOF.

        Lines longer than the reader's buffer limit are read in pieces and
        forwarded whole; a trailing line without a newline is forwarded too.
        """
        pending = b""
        while True:
            try:
                line = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                if pending or e.partial:
                    self._emit(pending + e.partial)
                return
            except asyncio.LimitOverrunError as e:
                pending += await stream.read(e.consumed)
                continue
            self._emit(pending + line)
            pending = b""

    def _emit(self, line: bytes) -> None:
        self.log_sink(line.decode("utf-8", errors="replace").rstrip("\r\n"))

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
