"""Helpers for the Git Bash POSIX shell on Windows.

Windows paths are manipulated with ntpath so the helpers behave the same
whatever host the code is imported on.
"""

import logging
import ntpath
import os
import re
import shlex
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..models import DetectionConfig, ExecutionOptions, PosixShellInfo, ProcessResult
from ..protocols import CommandRunner
from ..version_managers import pick_path_line

logger = logging.getLogger(__name__)


DEFAULT_SHELL_PATHS = [
    r"C:\Program Files\Git\bin\bash.exe",
    r"C:\Program Files (x86)\Git\bin\bash.exe",
    r"C:\Git\bin\bash.exe",
    r"D:\Program Files\Git\bin\bash.exe",
    r"D:\Git\bin\bash.exe",
]

REGISTRY_KEYS = [
    r"HKLM\SOFTWARE\GitForWindows",
    r"HKCU\SOFTWARE\GitForWindows",
]

_INSTALL_PATH = re.compile(r"InstallPath\s+REG_SZ\s+(.+)")
_GIT_VERSION = re.compile(r"git version (.+)")
_DRIVE_PATH = re.compile(r"^([A-Za-z]):[\\/]?(.*)$")

# PATH entries that would make `bash`/`claude` resolve into WSL
_WSL_ENTRY = re.compile(r"^(\\\\wsl\$|\\\\wsl\.localhost|//wsl\$|//wsl\.localhost|/mnt/[a-zA-Z](/|$))", re.IGNORECASE)


def is_wsl_launcher(path: str) -> bool:
    """True for the System32/WindowsApps bash.exe that starts WSL."""
    lowered = path.lower()
    return "system32" in lowered or "windowsapps" in lowered


def known_shell_paths() -> list[str]:
    """Default install locations plus the ones derived from the environment."""
    paths = list(DEFAULT_SHELL_PATHS)
    program_files = os.environ.get("ProgramFiles")
    if program_files:
        paths.append(ntpath.join(program_files, "Git", "bin", "bash.exe"))
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        paths.append(ntpath.join(local_app_data, "Programs", "Git", "bin", "bash.exe"))
    return list(dict.fromkeys(paths))


def git_root(shell_path: str) -> str:
    """Git installation root for a bin\\bash.exe or usr\\bin\\bash.exe path."""
    directory = ntpath.dirname(shell_path)
    if ntpath.basename(directory).lower() == "bin":
        directory = ntpath.dirname(directory)
    if ntpath.basename(directory).lower() == "usr":
        directory = ntpath.dirname(directory)
    return directory


def to_posix_path(windows_path: str) -> str:
    """C:\\Users\\me -> /c/Users/me (Git Bash mount form)."""
    match = _DRIVE_PATH.match(windows_path)
    if not match:
        return windows_path.replace("\\", "/")
    rest = match.group(2).replace("\\", "/").strip("/")
    drive = match.group(1).lower()
    return f"/{drive}/{rest}" if rest else f"/{drive}"


def sanitized_path(shell_path: str, current_path: Optional[str] = None) -> str:
    """PATH for Git Bash: Git tool dirs first, WSL-like entries removed."""
    current_path = os.environ.get("PATH", "") if current_path is None else current_path
    root = git_root(shell_path)
    entries = [
        ntpath.join(root, "bin"),
        ntpath.join(root, "usr", "bin"),
        ntpath.join(root, "mingw64", "bin"),
    ]
    for entry in current_path.split(";"):
        entry = entry.strip()
        if not entry or _WSL_ENTRY.match(entry):
            continue
        if entry.lower() not in (e.lower() for e in entries):
            entries.append(entry)
    return ";".join(entries)


class PosixShell:
    """Locates Git Bash and runs commands through it."""

    def __init__(
        self,
        runner: CommandRunner,
        config: Optional[DetectionConfig] = None,
        known_paths: Optional[Sequence[str]] = None,
        path_exists: Callable[[str], bool] = lambda p: Path(p).is_file()
    ):
        self.runner = runner
        self.config = config or DetectionConfig()
        self.known_paths = list(known_paths) if known_paths is not None else known_shell_paths()
        self._path_exists = path_exists

    async def _from_path_lookup(self) -> Optional[str]:
        result = await self.runner.run("where bash.exe", self.config.probe_options(quick=True))
        if not result.ok:
            return None
        for line in result.stdout.splitlines():
            candidate = line.strip()
            if candidate and not is_wsl_launcher(candidate):
                return candidate
        return None

    def _from_known_paths(self) -> Optional[str]:
        for candidate in self.known_paths:
            if self._path_exists(candidate):
                return candidate
        return None

    async def _from_registry(self) -> Optional[str]:
        for key in REGISTRY_KEYS:
            result = await self.runner.run(
                ["reg", "query", key, "/v", "InstallPath"],
                self.config.probe_options(quick=True),
            )
            if not result.ok:
                continue
            match = _INSTALL_PATH.search(result.stdout)
            if match:
                candidate = ntpath.join(match.group(1).strip(), "bin", "bash.exe")
                if self._path_exists(candidate):
                    return candidate
        return None

    async def find_shell(self) -> Optional[str]:
        """bash.exe path from PATH, known directories, then the registry."""
        found = await self._from_path_lookup()
        if found:
            logger.debug("Git Bash found on PATH: %s", found)
            return found
        found = self._from_known_paths()
        if found:
            logger.debug("Git Bash found in known location: %s", found)
            return found
        found = await self._from_registry()
        if found:
            logger.debug("Git Bash found via registry: %s", found)
        return found

    async def locate(self) -> PosixShellInfo:
        """Find Git Bash and report the git version it ships."""
        shell_path = await self.find_shell()
        if not shell_path:
            return PosixShellInfo(available=False)

        tool_version = None
        result = await self.run_command(
            shell_path, "git --version", self.config.probe_options(quick=True)
        )
        if result.ok:
            match = _GIT_VERSION.search(result.stdout)
            if match:
                tool_version = match.group(1).strip()
        return PosixShellInfo(available=True, shell_path=shell_path, tool_version=tool_version)

    async def run_command(
        self,
        shell_path: str,
        command: str,
        options: Optional[ExecutionOptions] = None
    ) -> ProcessResult:
        """Run a command line through `bash -l -c` with a WSL-free PATH."""
        options = options or self.config.probe_options()
        overrides = dict(options.environment_overrides)
        overrides["PATH"] = sanitized_path(shell_path, overrides.get("PATH"))
        options = options.model_copy(update={"environment_overrides": overrides})
        return await self.runner.run([shell_path, "-l", "-c", command], options)

    async def command_path(self, shell_path: str, name: str) -> Optional[str]:
        """Where `command -v name` points inside the shell, or None."""
        result = await self.run_command(
            shell_path, f"command -v {shlex.quote(name)}", self.config.probe_options(quick=True)
        )
        if not result.ok:
            return None
        return pick_path_line(result.stdout)

    async def has_command(self, shell_path: str, name: str) -> bool:
        return await self.command_path(shell_path, name) is not None

    async def verify_executable(self, shell_path: str, path: str) -> bool:
        """Check path exists inside the shell and answers --version."""
        quoted = shlex.quote(path)
        result = await self.run_command(
            shell_path,
            f"test -e {quoted} && {quoted} --version",
            self.config.probe_options(),
        )
        return result.ok
