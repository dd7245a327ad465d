"""Detector for macOS and Linux hosts."""

import glob
import logging
import os
import shlex
import shutil
from pathlib import Path
from typing import Optional, Sequence

from ..cli_utils import enhanced_path
from ..models import DetectionResult, ErrorKind, ExecutionOptions, ProcessResult
from ..version_managers import (
    VERSION_MANAGERS,
    VersionManager,
    extract_provenance,
    pick_path_line,
)
from .base import PlatformDetector, ProbeStep, looks_like_cli_output, parse_version

logger = logging.getLogger(__name__)


class UnixDetector(PlatformDetector):
    """Finds the CLI through version managers, the login shell PATH and known locations.

    Pipeline: cache -> version managers (fnm, nvm, volta, nodenv, npm) ->
    `command -v` -> direct `<name> --version` -> user override.
    """

    detector_type = "unix"

    def probe_steps(self) -> list[ProbeStep]:
        steps = [
            ProbeStep(m.name, lambda m=m: self.probe_version_manager(m))
            for m in VERSION_MANAGERS
        ]
        steps += [
            ProbeStep("shell", self.probe_shell_lookup),
            ProbeStep("direct", self.probe_direct),
            ProbeStep("user-configured", self.probe_user_override),
        ]
        return steps

    def _login_options(self, quick: bool = True) -> ExecutionOptions:
        return self.config.probe_options(quick=quick, use_login_shell=True)

    def _binary_env(self, path: str) -> dict[str, str]:
        # Node shims (#!/usr/bin/env node) need their own bin directory on PATH
        directory = os.path.dirname(path)
        current = os.environ.get("PATH", "")
        return {"PATH": f"{directory}{os.pathsep}{current}" if directory else current}

    async def probe_version(self, path: str) -> Optional[str]:
        result = await self.runner.run(
            [path, "--version"],
            self.config.probe_options(environment_overrides=self._binary_env(path)),
        )
        if not looks_like_cli_output(result):
            logger.debug("%s --version did not look like Claude (exit %s)", path, result.exit_code)
            return None
        return parse_version(result.stdout)

    def _found(self, path: str, version: str, method: str, extra: Optional[dict] = None) -> DetectionResult:
        resolved = os.path.realpath(path)
        metadata = extract_provenance(resolved) or extract_provenance(path)
        if extra:
            metadata.update(extra)
        return self.success(path, version, method, resolved_path=resolved, metadata=metadata)

    async def probe_version_manager(self, manager: VersionManager) -> Optional[DetectionResult]:
        probe = await self.runner.run(manager.probe, self._login_options())
        if not probe.ok:
            return None
        logger.debug("Version manager %s is installed", manager.name)
        for name in self.config.command_names:
            lookup = await self.runner.run(manager.lookup_command(name), self._login_options())
            path = pick_path_line(lookup.stdout) if lookup.ok else None
            if not path:
                continue
            version = await self.probe_version(path)
            if version is not None:
                return self._found(
                    path, version, f"package-manager:{manager.name}", {"packageManager": manager.name}
                )
        return None

    async def probe_shell_lookup(self) -> Optional[DetectionResult]:
        for name in self.config.command_names:
            quoted = shlex.quote(name)
            lookup = await self.runner.run(
                f"command -v {quoted} 2>/dev/null || which {quoted} 2>/dev/null",
                self._login_options(),
            )
            path = pick_path_line(lookup.stdout) if lookup.ok else None
            if not path:
                continue
            version = await self.probe_version(path)
            if version is not None:
                return self._found(path, version, "shell")
        return None

    async def probe_direct(self) -> Optional[DetectionResult]:
        search_path = enhanced_path(extra=self.config.extra_search_paths)
        for name in self.config.command_names:
            result = await self.runner.run([name, "--version"], self.config.probe_options())
            if not looks_like_cli_output(result):
                continue
            path = shutil.which(name, path=search_path) or name
            return self._found(path, parse_version(result.stdout), "direct")
        return None

    def scan_known_locations(self) -> list[str]:
        """nvm and fnm node versions holding a CLI binary, newest first."""
        home = Path.home()
        patterns = [
            home / ".nvm" / "versions" / "node" / "*" / "bin",
            home / ".local" / "share" / "fnm" / "node-versions" / "*" / "installation" / "bin",
            home / ".fnm" / "node-versions" / "*" / "installation" / "bin",
        ]
        found = []
        for pattern in patterns:
            for directory in sorted(glob.glob(str(pattern)), reverse=True):
                for name in self.config.command_names:
                    candidate = os.path.join(directory, name)
                    if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                        found.append(candidate)
        return found

    async def _execute(
        self,
        result: DetectionResult,
        args: Sequence[str],
        working_dir: Optional[str],
        options: ExecutionOptions
    ) -> ProcessResult:
        options = options.model_copy(update={
            "working_directory": working_dir or options.working_directory,
            "environment_overrides": {
                **self._binary_env(result.cli_path),
                **options.environment_overrides,
            },
        })
        return await self.runner.run([result.cli_path, *args], options)

    async def _spawn(self, result: DetectionResult, working_dir: str, args: Sequence[str]):
        options = self.config.cli_options(
            working_directory=working_dir,
            environment_overrides=self._binary_env(result.cli_path),
        )
        return await self.runner.spawn(result.cli_path, args, options)

    def suggestions(self, kind: Optional[ErrorKind] = None) -> list[str]:
        if kind == ErrorKind.PERMISSION_DENIED:
            return [
                "Make the configured Claude binary executable: chmod +x <path>",
                "Or reset the custom path to use automatic discovery",
            ]
        if kind == ErrorKind.INVALID_CONFIGURATION:
            return [
                "Configure an absolute path to the Claude binary",
                "Or reset the custom path to use automatic discovery",
            ]
        return [
            "Install Claude Code: npm install -g @anthropic-ai/claude-code",
            "Or with Homebrew: brew install claude-code",
            "Make sure the npm global bin directory is on your PATH",
            "Reload your shell configuration: source ~/.bashrc (or ~/.zshrc)",
            "Verify the installation: claude --version",
        ]
