"""Detector for Windows hosts running the CLI through Git Bash."""

import logging
import re
import shlex
from typing import Optional, Sequence

from ..models import DetectionResult, ErrorKind, ExecutionOptions, ProcessResult
from ..subsystems.posix_shell import PosixShell, sanitized_path, to_posix_path
from ..version_managers import VERSION_MANAGERS, VersionManager, extract_provenance, pick_path_line
from .base import PlatformDetector, ProbeStep, looks_like_cli_output, parse_version

logger = logging.getLogger(__name__)


# WSL UNC shares and the /mnt/<drive> mounts seen from inside a distribution
_WSL_PATH = re.compile(r"^(\\\\wsl\$|\\\\wsl\.localhost|//wsl\$|//wsl\.localhost|/mnt/[a-zA-Z](/|$))", re.IGNORECASE)


def classify_environment(path: str) -> tuple[str, str]:
    """Guess which environment a CLI path belongs to.

    Returns:
        (environment, description) where environment is one of native,
        posix-shell, linux-subsystem or unknown.
    """
    lowered = path.lower()
    if _WSL_PATH.match(path):
        return "linux-subsystem", "Claude is installed inside WSL"
    if path.startswith(("/usr/", "/bin/", "/home/")):
        return "linux-subsystem", "Claude is possibly installed inside WSL"
    if "\\" in path or "program files" in lowered or "appdata" in lowered:
        return "native", "Claude is installed natively on Windows"
    if "node_modules" in lowered or "npm" in lowered or lowered.endswith((".cmd", ".exe")):
        return "native", "Claude is installed as a Windows npm global package"
    if re.match(r"^/[a-zA-Z]/", path):
        return "posix-shell", "Claude is installed on a Git Bash path"
    return "unknown", "Unknown installation environment"


class WindowsDetector(PlatformDetector):
    """Finds and runs the CLI inside Git Bash.

    Pipeline: cache -> locate Git Bash (missing => SubsystemUnavailable) ->
    `command -v` inside the shell -> version managers -> user override.
    """

    detector_type = "posix-shell"

    def __init__(self, *args, posix_shell: Optional[PosixShell] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.posix_shell = posix_shell or PosixShell(self.runner, self.config)
        self.shell_path: Optional[str] = None
        self.tool_version: Optional[str] = None

    def probe_steps(self) -> list[ProbeStep]:
        steps = [
            ProbeStep("posix-shell", self.probe_shell_environment),
            ProbeStep("shell", self.probe_shell_lookup),
        ]
        steps += [
            ProbeStep(m.name, lambda m=m: self.probe_version_manager(m))
            for m in VERSION_MANAGERS
        ]
        steps.append(ProbeStep("user-configured", self.probe_user_override))
        return steps

    def restore_from_cache(self, result: DetectionResult) -> None:
        self.shell_path = result.metadata.get("shellPath") or self.shell_path

    async def probe_shell_environment(self) -> Optional[DetectionResult]:
        info = await self.posix_shell.locate()
        if not info.available:
            return self.failure(
                ErrorKind.SUBSYSTEM_UNAVAILABLE,
                "Git Bash not found. Claude Code on Windows requires Git for Windows.",
            )
        logger.debug("Using Git Bash at %s (git %s)", info.shell_path, info.tool_version)
        self.shell_path = info.shell_path
        self.tool_version = info.tool_version
        return None

    async def probe_version(self, path: str) -> Optional[str]:
        if not self.shell_path and await self.probe_shell_environment() is not None:
            return None
        result = await self.posix_shell.run_command(
            self.shell_path,
            f"{shlex.quote(to_posix_path(path))} --version",
            self.config.probe_options(),
        )
        if not looks_like_cli_output(result):
            return None
        return parse_version(result.stdout)

    def _found(self, path: str, version: str, method: str, extra: Optional[dict] = None) -> DetectionResult:
        environment, description = classify_environment(path)
        metadata = {
            **extract_provenance(path),
            "shellPath": self.shell_path,
            "gitVersion": self.tool_version,
            "environment": environment,
            "environmentDescription": description,
        }
        if extra:
            metadata.update(extra)
        return self.success(path, version, method, metadata=metadata)

    async def probe_shell_lookup(self) -> Optional[DetectionResult]:
        for name in self.config.command_names:
            path = await self.posix_shell.command_path(self.shell_path, name)
            if not path:
                continue
            version = await self.probe_version(path)
            if version is not None:
                return self._found(path, version, "shell")
        return None

    async def probe_version_manager(self, manager: VersionManager) -> Optional[DetectionResult]:
        quick = self.config.probe_options(quick=True)
        probe = await self.posix_shell.run_command(self.shell_path, manager.probe, quick)
        if not probe.ok:
            return None
        for name in self.config.command_names:
            lookup = await self.posix_shell.run_command(
                self.shell_path, manager.lookup_command(name), quick
            )
            path = pick_path_line(lookup.stdout) if lookup.ok else None
            if not path:
                continue
            version = await self.probe_version(path)
            if version is not None:
                return self._found(
                    path, version, f"package-manager:{manager.name}", {"packageManager": manager.name}
                )
        return None

    async def probe_user_override(self) -> Optional[DetectionResult]:
        result = await super().probe_user_override()
        if result is None:
            return None
        return self._found(result.cli_path, result.version, "user-configured")

    def _command_line(self, cli_path: str, args: Sequence[str], working_dir: Optional[str]) -> str:
        line = " ".join(shlex.quote(part) for part in [to_posix_path(cli_path), *args])
        if working_dir:
            return f"cd {shlex.quote(to_posix_path(working_dir))} && {line}"
        return line

    def _shell_for(self, result: DetectionResult) -> str:
        shell_path = self.shell_path or result.metadata.get("shellPath")
        if not shell_path:
            raise RuntimeError("Git Bash path unknown; run detection again")
        return shell_path

    async def _execute(
        self,
        result: DetectionResult,
        args: Sequence[str],
        working_dir: Optional[str],
        options: ExecutionOptions
    ) -> ProcessResult:
        shell_path = self._shell_for(result)
        return await self.posix_shell.run_command(
            shell_path, self._command_line(result.cli_path, args, working_dir), options
        )

    async def _spawn(self, result: DetectionResult, working_dir: str, args: Sequence[str]):
        shell_path = self._shell_for(result)
        options = self.config.cli_options(
            working_directory=working_dir,
            environment_overrides={"PATH": sanitized_path(shell_path)},
        )
        return await self.runner.spawn(
            shell_path,
            ["-l", "-c", self._command_line(result.cli_path, args, working_dir)],
            options,
        )

    def suggestions(self, kind: Optional[ErrorKind] = None) -> list[str]:
        if kind == ErrorKind.SUBSYSTEM_UNAVAILABLE:
            return [
                "Install Git for Windows: https://git-scm.com/download/win",
                "Install Node.js: https://nodejs.org/",
                "Install Claude Code in Git Bash: npm install -g @anthropic-ai/claude-code",
                "Restart the application after installing",
            ]
        if kind in (ErrorKind.INVALID_CONFIGURATION, ErrorKind.PERMISSION_DENIED):
            return [
                "Configure an absolute Windows path to the Claude binary (for example claude.cmd)",
                "Or reset the custom path to use automatic discovery",
            ]
        return [
            "Install Node.js: https://nodejs.org/",
            "Install Claude Code: npm install -g @anthropic-ai/claude-code",
            "Restart the application so the updated PATH is picked up",
            "Verify in Git Bash: claude --version",
        ]
