"""Command execution primitive.

Runs one-shot commands to completion and spawns long-lived interactive
sessions. A failed, missing or timed-out command is reported as an ordinary
ProcessResult; only programming errors raise.
"""

import asyncio
import codecs
import inspect
import logging
import os
import signal
import subprocess
import sys
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

import psutil

from .cli_utils import current_host_platform, enhanced_path, join_command, login_shell_command
from .models import ExecutionOptions, HostPlatform, ProcessResult
from .protocols import Command

logger = logging.getLogger(__name__)


OutputConsumer = Callable[[str], Union[None, Awaitable[None]]]

DEFAULT_KILL_GRACE_SECONDS = 5.0
_READ_CHUNK = 4096


def _platform_kwargs() -> dict[str, Any]:
    """Extra process creation flags for the running host."""
    if sys.platform == "win32":
        # GUI hosts would otherwise flash a console window per probe
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def _signal_name(returncode: Optional[int]) -> Optional[str]:
    if returncode is None or returncode >= 0 or sys.platform == "win32":
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return None


def collect_process_tree(pid: int) -> list[psutil.Process]:
    """All descendants of pid (children first discovered, recursively)."""
    try:
        return psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def stop_processes(procs: Sequence[psutil.Process], grace_period: float) -> list[int]:
    """Terminate processes, wait up to grace_period, then kill survivors.

    Returns:
        PIDs still alive after the forced kill (normally empty).
    """
    if not procs:
        return []
    for proc in procs:
        try:
            proc.terminate()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    _, alive = psutil.wait_procs(procs, timeout=grace_period)
    for proc in alive:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    _, alive = psutil.wait_procs(alive, timeout=grace_period)
    return [proc.pid for proc in alive]


def kill_process_tree(pid: int, include_parent: bool = True, grace_period: float = 0.0) -> list[int]:
    """Stop a process and every descendant. Returns PIDs that survived."""
    procs = collect_process_tree(pid)
    if include_parent:
        try:
            procs.append(psutil.Process(pid))
        except psutil.NoSuchProcess:
            pass
    return stop_processes(procs, grace_period)


class InteractiveSession:
    """Handle on a long-lived CLI process.

    The caller owns the handle: it must stream or drain output and eventually
    wait() or terminate() the process.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: Sequence[str],
        encoding: str = "utf-8",
        kill_grace_period: float = DEFAULT_KILL_GRACE_SECONDS
    ):
        self._process = process
        self.command = list(command)
        self.encoding = encoding
        self.kill_grace_period = kill_grace_period
        self._stream_tasks: list[asyncio.Task] = []

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    @property
    def process(self) -> asyncio.subprocess.Process:
        return self._process

    async def close_stdin(self) -> None:
        """Close the input stream so the CLI stops waiting for input."""
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass

    async def write(self, data: str) -> None:
        if self._process.stdin is None:
            raise RuntimeError("Session stdin is not piped")
        self._process.stdin.write(data.encode(self.encoding))
        await self._process.stdin.drain()

    def stream(
        self,
        on_stdout: OutputConsumer,
        on_stderr: Optional[OutputConsumer] = None
    ) -> list[asyncio.Task]:
        """Deliver output chunks to consumers as they arrive.

        Each stream is delivered in order; no ordering is imposed between
        stdout and stderr.
        """
        if self._process.stdout is not None:
            self._stream_tasks.append(
                asyncio.ensure_future(self._pump(self._process.stdout, on_stdout))
            )
        if self._process.stderr is not None:
            self._stream_tasks.append(
                asyncio.ensure_future(self._pump(self._process.stderr, on_stderr or on_stdout))
            )
        return self._stream_tasks

    async def _pump(self, reader: asyncio.StreamReader, consumer: OutputConsumer) -> None:
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        while True:
            chunk = await reader.read(_READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                outcome = consumer(text)
                if inspect.isawaitable(outcome):
                    await outcome
            if not chunk:
                break

    async def wait(self) -> int:
        returncode = await self._process.wait()
        if self._stream_tasks:
            await asyncio.gather(*self._stream_tasks, return_exceptions=True)
        return returncode

    async def terminate(self, grace_period: Optional[float] = None) -> Optional[int]:
        """Stop the session and its whole process tree.

        Sends a graceful terminate to every process in the tree, waits up to
        grace_period for the session process to exit, then force-kills
        whatever is still alive.
        """
        grace = self.kill_grace_period if grace_period is None else grace_period
        if not self.is_running:
            return self.returncode

        children = await asyncio.to_thread(collect_process_tree, self.pid)
        for child in children:
            try:
                child.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

        try:
            await asyncio.wait_for(self._process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Session %s did not exit within %.1fs, force killing", self.pid, grace)
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            await self._process.wait()

        survivors = await asyncio.to_thread(stop_processes, children, grace)
        if survivors:
            logger.warning("Processes survived tree kill: %s", survivors)

        for task in self._stream_tasks:
            if not task.done():
                task.cancel()
        return self.returncode


class SubprocessRunner:
    """CommandRunner backed by asyncio subprocesses."""

    def __init__(
        self,
        host: Optional[HostPlatform] = None,
        extra_search_paths: Sequence[str] = (),
        kill_grace_period: float = DEFAULT_KILL_GRACE_SECONDS
    ):
        self.host = host or current_host_platform()
        self.extra_search_paths = list(extra_search_paths)
        self.kill_grace_period = kill_grace_period

    def build_env(self, options: ExecutionOptions) -> dict[str, str]:
        """Inherited environment plus overrides, with PATH augmented on Unix."""
        env = {**os.environ, **options.environment_overrides}
        if self.host.is_unix:
            env["PATH"] = enhanced_path(env.get("PATH", ""), self.extra_search_paths)
        return env

    def _wrap(self, command: Command, options: ExecutionOptions, env: dict[str, str]) -> Command:
        if options.use_login_shell and self.host.is_unix:
            line = command if isinstance(command, str) else join_command(command)
            return login_shell_command(line, shell=env.get("SHELL"))
        return command

    async def run(
        self,
        command: Command,
        options: Optional[ExecutionOptions] = None
    ) -> ProcessResult:
        options = options or ExecutionOptions()
        env = self.build_env(options)
        command = self._wrap(command, options, env)
        display = command if isinstance(command, str) else join_command(command)
        logger.debug("Executing command: %s", display[:200])

        try:
            if isinstance(command, str):
                process = await asyncio.create_subprocess_shell(
                    command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=options.working_directory,
                    env=env,
                    **_platform_kwargs()
                )
            else:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=options.working_directory,
                    env=env,
                    **_platform_kwargs()
                )
        except FileNotFoundError as e:
            return ProcessResult(exit_code=127, stderr=str(e))
        except PermissionError as e:
            return ProcessResult(exit_code=126, stderr=str(e))
        except OSError as e:
            return ProcessResult(exit_code=1, stderr=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=options.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.debug("Command timed out after %.1fs: %s", options.timeout_seconds, display[:200])
            await asyncio.to_thread(kill_process_tree, process.pid, False, 0.5)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            return ProcessResult(
                exit_code=-1,
                stderr=f"Command timed out after {options.timeout_seconds:g}s",
                timed_out=True,
                signal="SIGKILL",
            )

        return ProcessResult(
            exit_code=process.returncode,
            stdout=stdout.decode(options.output_encoding, errors="replace"),
            stderr=stderr.decode(options.output_encoding, errors="replace"),
            signal=_signal_name(process.returncode),
            raw_stdout=stdout,
        )

    async def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        options: Optional[ExecutionOptions] = None
    ) -> InteractiveSession:
        """Start a long-lived process with piped stdin/stdout/stderr.

        Raises:
            OSError: If the executable cannot be started.
        """
        options = options or ExecutionOptions()
        env = self.build_env(options)
        argv = [command, *args]
        logger.debug("Spawning: %s (cwd=%s)", join_command(argv)[:200], options.working_directory)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=options.working_directory,
            env=env,
            **_platform_kwargs()
        )
        return InteractiveSession(
            process,
            argv,
            encoding=options.output_encoding,
            kill_grace_period=self.kill_grace_period,
        )
