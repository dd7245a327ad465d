"""Detection manager: the facade the rest of an application talks to.

Architecture:
- create_detector(): factory choosing exactly one detector for the host
- DetectionManager: holds the last result and forwards every run request to
  the detector; also manages installations and the user override
"""

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from .cache import DetectionCache
from .cli_utils import current_host_platform
from .detectors.base import PlatformDetector
from .detectors.unix import UnixDetector
from .detectors.windows import WindowsDetector
from .detectors.wsl import WslDetector
from .errors import LocatorError, NotDetectedError
from .execution import InteractiveSession, SubprocessRunner
from .models import (
    DetectionConfig,
    DetectionErrorInfo,
    DetectionResult,
    DetectionStats,
    ErrorKind,
    ExecutionOptions,
    HostPlatform,
    Installation,
    InstallationType,
    ProcessResult,
    VersionInfo,
    WindowsBackend,
)
from .protocols import CommandRunner, SettingsStore
from .subsystems.posix_shell import is_wsl_launcher, known_shell_paths
from .version_managers import extract_provenance

logger = logging.getLogger(__name__)


def select_windows_backend(config: DetectionConfig) -> WindowsBackend:
    """Resolve `auto` with a quick synchronous look at the host.

    Git Bash wins when present; WSL is used only when Git Bash is missing.
    """
    if config.windows_backend != WindowsBackend.AUTO:
        return config.windows_backend

    bash = shutil.which("bash.exe")
    if bash and not is_wsl_launcher(bash):
        return WindowsBackend.POSIX_SHELL
    if any(Path(p).is_file() for p in known_shell_paths()):
        return WindowsBackend.POSIX_SHELL
    if shutil.which("wsl.exe"):
        return WindowsBackend.LINUX_SUBSYSTEM
    # Neither present: the Git Bash detector reports SubsystemUnavailable
    return WindowsBackend.POSIX_SHELL


def create_detector(
    host: Optional[HostPlatform] = None,
    config: Optional[DetectionConfig] = None,
    runner: Optional[CommandRunner] = None,
    settings: Optional[SettingsStore] = None,
    cache: Optional[DetectionCache] = None
) -> PlatformDetector:
    """Build the detector for host.

    Args:
        host: Host platform (defaults to the running one)
        config: Detection configuration
        runner: Command runner; a SubprocessRunner by default
        settings: Store holding the user's CLI override
        cache: Result cache; built from config by default

    Returns:
        UnixDetector, WindowsDetector (Git Bash) or WslDetector
    """
    host = host or current_host_platform()
    config = config or DetectionConfig()
    runner = runner or SubprocessRunner(
        host,
        extra_search_paths=config.extra_search_paths,
        kill_grace_period=config.kill_grace_period_seconds,
    )
    kwargs: dict[str, Any] = {"config": config, "settings": settings, "cache": cache}

    if host.is_unix:
        return UnixDetector(runner, host, **kwargs)
    if select_windows_backend(config) == WindowsBackend.LINUX_SUBSYSTEM:
        return WslDetector(runner, host, **kwargs)
    return WindowsDetector(runner, host, **kwargs)


def source_label(result: DetectionResult) -> str:
    """Human-readable description of where an installation came from."""
    metadata = result.metadata
    if metadata.get("environmentDescription"):
        return metadata["environmentDescription"]
    if metadata.get("isFromFnm"):
        node = metadata.get("nodeVersion")
        return f"fnm (Node v{node})" if node else "fnm"
    if metadata.get("packageManager"):
        return f"{metadata['packageManager']} package manager"
    return {
        "cache": "Cached result",
        "shell": "System PATH",
        "direct": "Direct execution",
        "linux-subsystem": f"WSL ({result.subsystem_distribution})",
        "user-configured": "User configured",
    }.get(result.detection_method or "", "Auto-detected")


def installation_type(result: DetectionResult) -> InstallationType:
    if result.cli_path and ("sidecar" in result.cli_path or result.cli_path == "claude-code"):
        return InstallationType.BUNDLED
    if result.detection_method == "user-configured":
        return InstallationType.CUSTOM
    return InstallationType.SYSTEM


class DetectionManager:
    """Owns one detector and the last detection result.

    Construct one per application; nothing here is a module-level singleton.
    """

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        runner: Optional[CommandRunner] = None,
        settings: Optional[SettingsStore] = None,
        host: Optional[HostPlatform] = None,
        detector: Optional[PlatformDetector] = None
    ):
        self.config = config or DetectionConfig()
        self.settings = settings
        self.host = host or (detector.host_platform if detector else current_host_platform())
        self.detector = detector or create_detector(self.host, self.config, runner, settings)
        self.last_result: Optional[DetectionResult] = None
        self.last_detection_time: Optional[float] = None

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    async def detect_claude(self) -> DetectionResult:
        """Detect the CLI (cache first). Never raises."""
        try:
            result = await self.detector.detect()
        except Exception as e:
            logger.exception("Claude detection failed unexpectedly")
            result = DetectionResult(
                success=False,
                host_platform=self.host,
                execution_mode=self.detector.execution_mode,
                error=DetectionErrorInfo(
                    kind=ErrorKind.EXECUTION_FAILED,
                    message=f"Detection failed: {e}",
                    detail=type(e).__name__,
                ),
                suggestions=self.detector.suggestions(ErrorKind.EXECUTION_FAILED),
            )
        self.last_result = result
        self.last_detection_time = time.time()
        return result

    async def redetect_claude(self) -> DetectionResult:
        """Detect again, ignoring whatever the cache holds."""
        self.detector.clear_cache()
        return await self.detect_claude()

    def get_last_detection_result(self) -> Optional[DetectionResult]:
        return self.last_result

    def is_available(self) -> bool:
        return self.last_result is not None and self.last_result.success

    async def get_version(self) -> Optional[str]:
        """Version of the detected CLI, detecting first if needed."""
        if self.last_result is None:
            await self.detect_claude()
        return self.last_result.version if self.last_result.success else None

    async def verify_claude(self, path: str) -> bool:
        """Whether path is a working CLI binary on this host."""
        try:
            return await self.detector.verify(path)
        except Exception as e:
            logger.warning("Verifying %s failed: %s", path, e)
            return False

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    def _require_detected(self) -> None:
        if not self.is_available():
            raise NotDetectedError()

    async def execute(
        self,
        args: Sequence[str],
        working_dir: Optional[str] = None,
        options: Optional[ExecutionOptions] = None
    ) -> ProcessResult:
        """Run the CLI to completion in the detected environment.

        Raises:
            NotDetectedError: Before a successful detection.
            InvalidConfigurationError: For a working directory the CLI cannot use.
        """
        self._require_detected()
        return await self.detector.execute(args, working_dir, options)

    async def start_interactive_session(
        self,
        working_dir: str,
        args: Sequence[str] = (),
        close_stdin: bool = True
    ) -> InteractiveSession:
        """Spawn the CLI as a long-lived session the caller owns.

        Raises:
            NotDetectedError: Before a successful detection.
        """
        self._require_detected()
        return await self.detector.start_interactive_session(working_dir, args, close_stdin)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def get_platform_info(self) -> dict[str, str]:
        return {
            "platform": self.host.value,
            "execution_mode": self.detector.execution_mode.value,
            "detector_type": self.detector.detector_type,
        }

    async def get_detection_stats(self) -> DetectionStats:
        """Last result combined with platform metadata, detecting first if needed."""
        result = self.last_result or await self.detect_claude()
        return DetectionStats(
            is_detected=result.success,
            cli_path=result.cli_path,
            version=result.version,
            platform=self.host,
            execution_mode=self.detector.execution_mode,
            detector_type=self.detector.detector_type,
            subsystem_distribution=result.subsystem_distribution,
            detection_method=result.detection_method,
            last_detection_time=self.last_detection_time,
            cache_hit=result.detection_method == "cache",
        )

    # -------------------------------------------------------------------------
    # Installation management
    # -------------------------------------------------------------------------

    async def list_installations(self) -> list[Installation]:
        """Every installation found: fresh detection, known locations, override.

        De-duplicated by resolved path.
        """
        installations: list[Installation] = []
        seen: set[str] = set()

        def add(installation: Installation) -> None:
            key = installation.resolved_path or installation.path
            if key in seen or installation.path in seen:
                return
            seen.update({key, installation.path})
            installations.append(installation)

        result = await self.redetect_claude()
        if result.success:
            add(Installation(
                path=result.cli_path,
                version=result.version,
                source=source_label(result),
                installation_type=installation_type(result),
                resolved_path=result.resolved_path,
                node_version=result.metadata.get("nodeVersion"),
            ))

        for path in self.detector.scan_known_locations():
            resolved = os.path.realpath(path)
            if resolved in seen or path in seen:
                continue
            version = await self.detector.probe_version(path)
            if version is None:
                continue
            provenance = extract_provenance(resolved)
            add(Installation(
                path=path,
                version=version,
                source=f"{provenance.get('packageManager', 'Node')} (Node v{provenance['nodeVersion']})"
                if provenance.get("nodeVersion") else "Known location",
                resolved_path=resolved if resolved != path else None,
                node_version=provenance.get("nodeVersion"),
            ))

        custom = self.detector.override_path()
        if custom and custom not in seen and await self.verify_claude(custom):
            add(Installation(
                path=custom,
                version="unknown",
                source="User configured",
                installation_type=InstallationType.CUSTOM,
            ))

        return installations

    async def find_cli_binary(self) -> str:
        """Path of the CLI after a fresh detection.

        Raises:
            LocatorError: With a message carrying the remediation hints.
        """
        result = await self.redetect_claude()
        if result.success:
            return result.cli_path
        message = result.error.message if result.error else "Claude Code not found"
        if result.suggestions:
            message = f"{message}. {', '.join(result.suggestions)}"
        error = LocatorError(message)
        error.kind = result.error.kind if result.error else None
        raise error

    async def check_version(self) -> VersionInfo:
        try:
            await self.find_cli_binary()
        except LocatorError as e:
            return VersionInfo(is_installed=False, output=str(e) or "Claude Code detection failed")
        version = await self.get_version()
        return VersionInfo(is_installed=True, version=version, output=f"Claude Code version {version}")

    async def set_custom_cli_path(self, path: str) -> DetectionResult:
        """Verify and persist a user-configured CLI path, then re-detect.

        Raises:
            LocatorError: If no settings store is configured or the path is not a working CLI.
        """
        if self.settings is None:
            raise LocatorError("No settings store configured")
        if not await self.verify_claude(path):
            raise LocatorError(f"Invalid Claude binary path: {path}")
        self.settings.set_cli_path(path)
        return await self.redetect_claude()

    async def reset_to_auto_discovery(self) -> DetectionResult:
        if self.settings is not None:
            self.settings.clear_cli_path()
        return await self.redetect_claude()
