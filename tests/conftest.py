"""Shared fixtures: a scripted CommandRunner and detection configs."""

from typing import Callable, Optional, Sequence, Union

import pytest

from claude_locator.models import DetectionConfig, ExecutionOptions, ProcessResult
from claude_locator.protocols import Command


Matcher = Union[str, Callable[[str], bool]]


def render(command: Command) -> str:
    return command if isinstance(command, str) else " ".join(command)


class FakeSession:
    """Stand-in for InteractiveSession."""

    def __init__(self, command: str, args: Sequence[str], options: Optional[ExecutionOptions]):
        self.command = command
        self.args = list(args)
        self.options = options
        self.stdin_closed = False

    async def close_stdin(self) -> None:
        self.stdin_closed = True


class FakeRunner:
    """CommandRunner returning scripted results.

    Responses are matched in registration order against the command rendered
    as one string; a matcher is a substring or a predicate. Unmatched
    commands behave like a missing executable (exit 127).
    """

    def __init__(self):
        self.responses: list[tuple[Matcher, ProcessResult]] = []
        self.calls: list[tuple[Command, Optional[ExecutionOptions]]] = []
        self.spawned: list[FakeSession] = []

    def when(
        self,
        matcher: Matcher,
        stdout: str = "",
        exit_code: int = 0,
        stderr: str = "",
        raw_stdout: bytes = b""
    ) -> "FakeRunner":
        self.responses.append((matcher, ProcessResult(
            exit_code=exit_code, stdout=stdout, stderr=stderr, raw_stdout=raw_stdout
        )))
        return self

    def commands(self) -> list[str]:
        return [render(command) for command, _ in self.calls]

    async def run(self, command: Command, options: Optional[ExecutionOptions] = None) -> ProcessResult:
        self.calls.append((command, options))
        text = render(command)
        for matcher, result in self.responses:
            if matcher(text) if callable(matcher) else matcher in text:
                return result
        return ProcessResult(exit_code=127, stderr="command not found")

    async def spawn(self, command: str, args: Sequence[str] = (), options: Optional[ExecutionOptions] = None):
        session = FakeSession(command, args, options)
        self.spawned.append(session)
        return session


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def config(tmp_path):
    return DetectionConfig(cache_file=str(tmp_path / "cache" / "claude-detection-cache.json"))
