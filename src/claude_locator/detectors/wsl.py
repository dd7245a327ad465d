"""Detector for Windows hosts running the CLI inside a WSL distribution."""

import logging
import shlex
from typing import Optional, Sequence

from ..errors import InvalidConfigurationError
from ..models import (
    DetectionErrorInfo,
    DetectionResult,
    ErrorKind,
    ExecutionMode,
    ExecutionOptions,
    ProcessResult,
    SubsystemDistribution,
    SubsystemInfo,
)
from ..path_translator import PathKind, PathTranslator, detect_path_kind
from ..subsystems.wsl import LinuxSubsystem
from ..version_managers import ACTIVATION_PREFIX, extract_provenance, filesystem_search_command, pick_path_line
from .base import PlatformDetector, ProbeStep, looks_like_cli_output, parse_version

logger = logging.getLogger(__name__)


class WslDetector(PlatformDetector):
    """Finds the CLI inside the first WSL distribution that has it.

    Pipeline: cache -> WSL availability (missing => SubsystemUnavailable) ->
    per distribution lookups -> user override. The owning distribution is
    remembered and every later invocation targets it.
    """

    detector_type = "linux-subsystem"
    execution_mode = ExecutionMode.LINUX_SUBSYSTEM

    def __init__(self, *args, subsystem: Optional[LinuxSubsystem] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.subsystem = subsystem or LinuxSubsystem(self.runner, self.config)
        self.subsystem_info: Optional[SubsystemInfo] = None
        self.distribution: Optional[str] = None
        self.translator = PathTranslator()

    def probe_steps(self) -> list[ProbeStep]:
        return [
            ProbeStep("linux-subsystem-environment", self.probe_environment),
            ProbeStep("linux-subsystem", self.probe_distributions),
            ProbeStep("user-configured", self.probe_user_override),
        ]

    def _set_distribution(self, name: Optional[str]) -> None:
        self.distribution = name
        self.translator = PathTranslator(name)

    def restore_from_cache(self, result: DetectionResult) -> None:
        if result.subsystem_distribution:
            self._set_distribution(result.subsystem_distribution)

    @property
    def distributions(self) -> list[SubsystemDistribution]:
        return self.subsystem_info.distributions if self.subsystem_info else []

    async def probe_environment(self) -> Optional[DetectionResult]:
        info = await self.subsystem.detect_environment()
        if not info.available:
            return self.failure(
                ErrorKind.SUBSYSTEM_UNAVAILABLE,
                "WSL is not available or has no installed distributions.",
            )
        self.subsystem_info = info
        logger.debug(
            "WSL %s with distributions: %s",
            info.version, ", ".join(d.name for d in info.distributions)
        )
        return None

    def lookup_commands(self, name: str) -> list[tuple[str, str, list[str]]]:
        """(label, command, run variants) lookups for one command name, in order."""
        quoted = shlex.quote(name)
        return [
            ("direct", f"which {quoted}", ["direct"]),
            ("login-shell", f"which {quoted}", ["login-shell"]),
            ("version-manager", f"{ACTIVATION_PREFIX} command -v {quoted}", ["login-shell"]),
            ("filesystem", filesystem_search_command(name), ["login-shell"]),
        ]

    async def verify_in(self, distribution: str, path: str) -> tuple[Optional[str], Optional[str]]:
        """(version, run variant) of the CLI at path, or (None, None)."""
        result, variant = await self.subsystem.run_with_variant(
            distribution, f"{shlex.quote(path)} --version", self.config.probe_options()
        )
        if not looks_like_cli_output(result):
            return None, None
        return parse_version(result.stdout), variant

    async def probe_version_in(self, distribution: str, path: str) -> Optional[str]:
        version, _ = await self.verify_in(distribution, path)
        return version

    async def probe_version(self, path: str) -> Optional[str]:
        if self.distribution is None and self.subsystem_info is None:
            if await self.probe_environment() is not None:
                return None
        distribution = self.distribution or (
            self.subsystem_info.default_distribution if self.subsystem_info else None
        )
        if not distribution:
            return None
        return await self.probe_version_in(distribution, path)

    async def probe_distribution(self, distribution: SubsystemDistribution) -> Optional[DetectionResult]:
        for name in self.config.command_names:
            for label, command, variants in self.lookup_commands(name):
                result = await self.subsystem.run_in(
                    distribution.name, command, self.config.probe_options(quick=True), variants
                )
                path = pick_path_line(result.stdout) if result.ok else None
                if not path:
                    continue
                version, variant = await self.verify_in(distribution.name, path)
                if version is None:
                    logger.debug("Candidate %s in %s failed verification", path, distribution.name)
                    continue
                self._set_distribution(distribution.name)
                metadata = {
                    **extract_provenance(path),
                    "lookup": label,
                    "runVariant": variant,
                    "distributionState": distribution.state.value,
                    "wslVersion": self.subsystem_info.version if self.subsystem_info else "unknown",
                }
                return self.success(
                    path, version, "linux-subsystem", metadata=metadata, distribution=distribution.name
                )
        return None

    async def probe_distributions(self) -> Optional[DetectionResult]:
        for distribution in self.distributions:
            logger.debug("Searching WSL distribution %s", distribution.name)
            try:
                result = await self.probe_distribution(distribution)
            except Exception as e:
                logger.warning("Probing WSL distribution %s failed: %s", distribution.name, e)
                continue
            if result is not None:
                return result
        return None

    async def probe_user_override(self) -> Optional[DetectionResult]:
        path = self.override_path()
        if not path:
            return None
        if detect_path_kind(path) == PathKind.HOST:
            try:
                path = self.translator.host_to_subsystem(path)
            except InvalidConfigurationError as e:
                self._override_problem = DetectionErrorInfo(
                    kind=ErrorKind.INVALID_CONFIGURATION, message=str(e), detail={"path": path}
                )
                return None
        elif not path.startswith("/"):
            self._override_problem = DetectionErrorInfo(
                kind=ErrorKind.INVALID_CONFIGURATION,
                message=f"Configured Claude path must be absolute: {path}",
                detail={"path": path},
            )
            return None

        quoted = shlex.quote(path)
        for distribution in self.distributions:
            exists = await self.subsystem.run_in(
                distribution.name, f"test -e {quoted} && echo yes",
                self.config.probe_options(quick=True), ["direct"]
            )
            if not exists.ok:
                continue
            executable = await self.subsystem.run_in(
                distribution.name, f"test -x {quoted} && echo yes",
                self.config.probe_options(quick=True), ["direct"]
            )
            if not executable.ok:
                self._override_problem = DetectionErrorInfo(
                    kind=ErrorKind.PERMISSION_DENIED,
                    message=f"Configured Claude path is not executable in {distribution.name}: {path}",
                    detail={"path": path, "distribution": distribution.name},
                )
                continue
            version, variant = await self.verify_in(distribution.name, path)
            if version is not None:
                self._set_distribution(distribution.name)
                return self.success(
                    path, version, "user-configured",
                    metadata={"runVariant": variant}, distribution=distribution.name
                )
        return None

    def validate_working_dir(self, working_dir: Optional[str]) -> None:
        if working_dir:
            self.translator.working_directory_for_cli(working_dir)

    def _target(self, result: DetectionResult) -> str:
        distribution = result.subsystem_distribution or self.distribution
        if not distribution:
            raise RuntimeError("WSL distribution unknown; run detection again")
        return distribution

    def _variant(self, result: DetectionResult) -> str:
        # Shell setup that made the binary runnable at detection time
        return result.metadata.get("runVariant") or "direct"

    async def _execute(
        self,
        result: DetectionResult,
        args: Sequence[str],
        working_dir: Optional[str],
        options: ExecutionOptions
    ) -> ProcessResult:
        wsl_dir = self.translator.working_directory_for_cli(working_dir) if working_dir else None
        return await self.subsystem.run_direct(
            self._target(result), [result.cli_path, *args], wsl_dir, options, self._variant(result)
        )

    async def _spawn(self, result: DetectionResult, working_dir: str, args: Sequence[str]):
        wsl_dir = self.translator.working_directory_for_cli(working_dir)
        argv = self.subsystem.direct_argv(
            self._target(result), [result.cli_path, *args], wsl_dir, self._variant(result)
        )
        return await self.runner.spawn(argv[0], argv[1:], self.config.cli_options())

    def suggestions(self, kind: Optional[ErrorKind] = None) -> list[str]:
        if kind == ErrorKind.SUBSYSTEM_UNAVAILABLE:
            return [
                "Install WSL: wsl --install",
                "Enable the 'Windows Subsystem for Linux' optional feature",
                "Restart the computer to finish the WSL installation",
                "Install a distribution: wsl --install -d Ubuntu",
            ]
        if kind in (ErrorKind.INVALID_CONFIGURATION, ErrorKind.PERMISSION_DENIED):
            return [
                "Configure an absolute WSL path to the Claude binary (for example /usr/local/bin/claude)",
                "Make it executable inside WSL: chmod +x <path>",
            ]
        return [
            "Install Node.js inside WSL: curl -fsSL https://deb.nodesource.com/setup_lts.x | sudo -E bash - && sudo apt-get install -y nodejs",
            "Install Claude Code inside WSL: npm install -g @anthropic-ai/claude-code",
            "Verify the installation: wsl -- claude --version",
            "Make sure the WSL distribution is running",
        ]
