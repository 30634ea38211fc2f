"""
Shared test doubles for the launcher unit tests.

FakeRunner stands in for ProcessRunner: it records every argument vector,
answers from prefix-matched rules and never spawns a real process.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from kitty_controller.process_runner import ProcessResult, ProcessRunner


@dataclass
class Rule:
    prefix: tuple[str, ...]
    returncode: int = 0
    stdout: bytes = b""
    delay: float = 0.0
    error: BaseException | None = None
    effect: Callable[[list[str], Path | None], None] | None = None


@dataclass
class Call:
    argv: list[str]
    cwd: Path | None
    timeout: float | None
    started: float
    finished: float | None = None


@dataclass
class FakeRunner(ProcessRunner):
    rules: list[Rule] = field(default_factory=list)
    calls: list[Call] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.log_sink = self.lines.append

    def on(self, *prefix: str, **kwargs) -> "FakeRunner":
        """Register a response for argument vectors starting with `prefix`."""
        self.rules.insert(0, Rule(prefix=tuple(prefix), **kwargs))
        return self

    def commands(self, *prefix: str) -> list[list[str]]:
        return [c.argv for c in self.calls if tuple(c.argv[: len(prefix)]) == prefix]

    def _match(self, argv: list[str]) -> Rule:
        for rule in self.rules:
            if tuple(argv[: len(rule.prefix)]) == rule.prefix:
                return rule
        return Rule(prefix=())

    async def _run(self, argv, cwd, timeout) -> Rule:
        loop = asyncio.get_running_loop()
        call = Call(
            argv=list(argv),
            cwd=Path(cwd) if cwd is not None else None,
            timeout=timeout,
            started=loop.time(),
        )
        self.calls.append(call)
        rule = self._match(list(argv))
        if rule.effect:
            rule.effect(list(argv), call.cwd)
        if rule.delay:
            await asyncio.sleep(rule.delay)
        call.finished = loop.time()
        if rule.error is not None:
            raise rule.error
        return rule

    async def execute(self, argv, cwd=None, env=None, timeout=None) -> int:
        rule = await self._run(argv, cwd, timeout)
        return rule.returncode

    async def capture(self, argv, cwd=None, env=None, timeout=None) -> ProcessResult:
        rule = await self._run(argv, cwd, timeout)
        return ProcessResult(argv=list(argv), returncode=rule.returncode, stdout=rule.stdout)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
