"""Platform detector contract and the shared probing machinery.

Architecture:
- PlatformDetector: abstract base; owns cache handling, result construction,
  the user-override step and the NotDetected guards
- UnixDetector / WindowsDetector / WslDetector: the probing pipelines
- ProbeStep + run_pipeline: an ordered list of strategies, first hit wins
"""

import logging
import ntpath
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..cache import DetectionCache
from ..errors import InvalidConfigurationError, NotDetectedError
from ..models import (
    DetectionConfig,
    DetectionErrorInfo,
    DetectionResult,
    ErrorKind,
    ExecutionMode,
    ExecutionOptions,
    HostPlatform,
    ProcessResult,
)
from ..protocols import CommandRunner, SettingsStore

logger = logging.getLogger(__name__)


_VERSION = re.compile(r"(\d+\.\d+\.\d+)")


def parse_version(output: str) -> str:
    """First x.y.z in the output, or 'unknown'."""
    match = _VERSION.search(output or "")
    return match.group(1) if match else "unknown"


def looks_like_cli_output(result: ProcessResult) -> bool:
    """A real CLI answers --version with exit 0 and its own name."""
    return result.ok and "claude" in result.stdout.lower()


# =============================================================================
# Probing pipeline
# =============================================================================

@dataclass(frozen=True)
class ProbeStep:
    """One named strategy. Returns a result to stop the pipeline, None to continue."""
    name: str
    probe: Callable[[], Awaitable[Optional[DetectionResult]]]


async def run_pipeline(steps: Sequence[ProbeStep]) -> Optional[DetectionResult]:
    """Evaluate steps in order and return the first result produced.

    A step that raises is logged and skipped; it never aborts detection.
    """
    for step in steps:
        logger.debug("Detection step: %s", step.name)
        try:
            result = await step.probe()
        except Exception as e:
            logger.warning("Detection step %s failed: %s", step.name, e)
            continue
        if result is not None:
            logger.debug("Detection step %s produced a result (success=%s)", step.name, result.success)
            return result
    return None


# =============================================================================
# Base detector
# =============================================================================

class PlatformDetector(ABC):
    """Detects, verifies and invokes the CLI on one kind of host.

    Subclasses provide the probing pipeline, version probing and the way
    invocations are wrapped. Everything else (cache, override, guards,
    result construction) lives here.
    """

    detector_type: str = "base"
    execution_mode: ExecutionMode = ExecutionMode.NATIVE

    def __init__(
        self,
        runner: CommandRunner,
        host_platform: HostPlatform,
        config: Optional[DetectionConfig] = None,
        settings: Optional[SettingsStore] = None,
        cache: Optional[DetectionCache] = None
    ):
        self.runner = runner
        self.host_platform = host_platform
        self.config = config or DetectionConfig()
        self.settings = settings
        self.cache = cache or DetectionCache(
            self.config.cache_path,
            host_platform,
            success_ttl_seconds=self.config.success_ttl_seconds,
            failure_ttl_seconds=self.config.failure_ttl_seconds,
        )
        self.last_result: Optional[DetectionResult] = None
        self.last_detection_time: Optional[float] = None
        self.cache_hit = False
        self._override_problem: Optional[DetectionErrorInfo] = None

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def probe_steps(self) -> list[ProbeStep]:
        """Ordered probing strategies for this host."""
        ...

    @abstractmethod
    async def probe_version(self, path: str) -> Optional[str]:
        """Run `<path> --version`; return the version if it is the CLI, else None."""
        ...

    @abstractmethod
    async def _execute(
        self,
        result: DetectionResult,
        args: Sequence[str],
        working_dir: Optional[str],
        options: ExecutionOptions
    ) -> ProcessResult:
        ...

    @abstractmethod
    async def _spawn(
        self,
        result: DetectionResult,
        working_dir: str,
        args: Sequence[str]
    ) -> Any:
        ...

    @abstractmethod
    def suggestions(self, kind: Optional[ErrorKind] = None) -> list[str]:
        """Remediation hints for a failed detection of the given kind."""
        ...

    def restore_from_cache(self, result: DetectionResult) -> None:
        """Recover detector state (shell path, distribution) from a cached result."""

    def scan_known_locations(self) -> list[str]:
        """Installed CLI binaries found on disk without running anything."""
        return []

    # -------------------------------------------------------------------------
    # Result construction
    # -------------------------------------------------------------------------

    def success(
        self,
        cli_path: str,
        version: Optional[str],
        method: str,
        resolved_path: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        distribution: Optional[str] = None
    ) -> DetectionResult:
        return DetectionResult(
            success=True,
            host_platform=self.host_platform,
            execution_mode=self.execution_mode,
            cli_path=cli_path,
            resolved_path=resolved_path if resolved_path and resolved_path != cli_path else None,
            version=version,
            detection_method=method,
            subsystem_distribution=distribution,
            metadata=metadata or {},
        )

    def failure(self, kind: ErrorKind, message: str, detail: Any = None) -> DetectionResult:
        return DetectionResult(
            success=False,
            host_platform=self.host_platform,
            execution_mode=self.execution_mode,
            error=DetectionErrorInfo(kind=kind, message=message, detail=detail),
            suggestions=self.suggestions(kind),
        )

    def not_found(self) -> DetectionResult:
        """Final failure once every step came back empty."""
        if self._override_problem is not None:
            return self.failure(
                self._override_problem.kind,
                self._override_problem.message,
                self._override_problem.detail,
            )
        return self.failure(
            ErrorKind.NOT_FOUND,
            "Claude CLI not found. Please install Claude Code or configure its path.",
        )

    # -------------------------------------------------------------------------
    # User override
    # -------------------------------------------------------------------------

    def override_path(self) -> Optional[str]:
        """Explicitly configured path, then the settings store."""
        if self.config.custom_cli_path:
            return self.config.custom_cli_path
        if self.settings is not None:
            return self.settings.get_cli_path()
        return None

    def inspect_override(self, path: str) -> Optional[DetectionErrorInfo]:
        """Reject an override that cannot possibly work, without running it."""
        if not (os.path.isabs(path) or ntpath.isabs(path)):
            return DetectionErrorInfo(
                kind=ErrorKind.INVALID_CONFIGURATION,
                message=f"Configured Claude path must be absolute: {path}",
                detail={"path": path},
            )
        if not os.path.exists(path):
            logger.warning("Configured Claude path does not exist: %s", path)
            return None
        if self.host_platform.is_unix and not os.access(path, os.X_OK):
            return DetectionErrorInfo(
                kind=ErrorKind.PERMISSION_DENIED,
                message=f"Configured Claude path is not executable: {path}",
                detail={"path": path},
            )
        return None

    async def probe_user_override(self) -> Optional[DetectionResult]:
        path = self.override_path()
        if not path:
            return None
        problem = self.inspect_override(path)
        if problem is not None:
            logger.warning(problem.message)
            self._override_problem = problem
            return None
        version = await self.probe_version(path)
        if version is None:
            return None
        return self.success(path, version, "user-configured", resolved_path=os.path.realpath(path))

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    async def detect(self) -> DetectionResult:
        """Cached result when valid, otherwise run the probing pipeline.

        Fresh results are written back to the cache.
        """
        self._override_problem = None
        self.last_detection_time = time.time()

        if self.config.use_cache:
            cached = self.cache.get()
            if cached is not None:
                logger.info("Using cached Claude detection result")
                self.restore_from_cache(cached)
                self.cache_hit = True
                self.last_result = cached.model_copy(update={
                    "detection_method": "cache",
                    "metadata": {**cached.metadata, "cachedDetectionMethod": cached.detection_method},
                })
                return self.last_result

        self.cache_hit = False
        result = await run_pipeline(self.probe_steps())
        if result is None:
            result = self.not_found()

        if result.success:
            logger.info("Claude CLI detected at %s via %s", result.cli_path, result.detection_method)
        else:
            logger.info("Claude CLI not detected: %s", result.error.message)

        self.cache.put(result)
        self.last_result = result
        return result

    async def verify(self, path: str) -> bool:
        """Whether path is a working CLI binary on this host."""
        return await self.probe_version(path) is not None

    def _require_detected(self) -> DetectionResult:
        if self.last_result is None or not self.last_result.success:
            raise NotDetectedError()
        return self.last_result

    def validate_working_dir(self, working_dir: Optional[str]) -> None:
        """Raises InvalidConfigurationError for a working directory the CLI cannot use."""
        if working_dir and not os.path.isdir(working_dir):
            raise InvalidConfigurationError(f"Working directory does not exist: {working_dir}")

    async def execute(
        self,
        args: Sequence[str],
        working_dir: Optional[str] = None,
        options: Optional[ExecutionOptions] = None
    ) -> ProcessResult:
        """Run the detected CLI to completion.

        Raises:
            NotDetectedError: If no successful detection happened yet.
        """
        result = self._require_detected()
        self.validate_working_dir(working_dir)
        options = options or self.config.cli_options()
        return await self._execute(result, list(args), working_dir, options)

    async def start_interactive_session(
        self,
        working_dir: str,
        args: Sequence[str] = (),
        close_stdin: bool = True
    ):
        """Spawn the detected CLI as a long-lived session.

        Raises:
            NotDetectedError: If no successful detection happened yet.
        """
        result = self._require_detected()
        self.validate_working_dir(working_dir)
        session = await self._spawn(result, working_dir, list(args))
        if close_stdin:
            await session.close_stdin()
        return session

    def is_available(self) -> bool:
        return self.last_result is not None and self.last_result.success

    async def get_version(self) -> Optional[str]:
        """Version from the last detection.

        Raises:
            NotDetectedError: If detect() never ran.
        """
        if self.last_result is None:
            raise NotDetectedError()
        return self.last_result.version

    def clear_cache(self) -> None:
        self.cache.clear()
