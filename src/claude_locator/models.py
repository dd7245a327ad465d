"""Data models for Claude CLI detection.

Uses Pydantic for validation. The detection result is persisted to the cache
file as JSON, so every model here round-trips through model_dump_json().
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Default timeouts (milliseconds)
DEFAULT_TIMEOUT_MS = 30_000
CLI_TIMEOUT_MS = 300_000

DEFAULT_STATE_DIR = Path.home() / ".claudiatron"


class HostPlatform(str, Enum):
    """Host operating system the detector runs on."""
    DARWIN = "unix-darwin"
    LINUX = "unix-linux"
    WINDOWS = "windows"

    @property
    def is_unix(self) -> bool:
        return self in (HostPlatform.DARWIN, HostPlatform.LINUX)


class ExecutionMode(str, Enum):
    """How invocations of the CLI must be wrapped."""
    NATIVE = "native"
    LINUX_SUBSYSTEM = "linux-subsystem"


class ErrorKind(str, Enum):
    """Classification of detection failures.

    The kind decides which remediation is suggested to the user.
    """
    NOT_FOUND = "NotFound"                             # Pipeline exhausted
    SUBSYSTEM_UNAVAILABLE = "SubsystemUnavailable"     # WSL or Git Bash missing
    PERMISSION_DENIED = "PermissionDenied"
    EXECUTION_FAILED = "ExecutionFailed"               # Unexpected error while probing
    INVALID_CONFIGURATION = "InvalidConfiguration"     # Bad override or working dir


class DistributionState(str, Enum):
    RUNNING = "Running"
    STOPPED = "Stopped"


class WindowsBackend(str, Enum):
    """Which Windows detector the manager builds at construction."""
    AUTO = "auto"
    POSIX_SHELL = "posix-shell"
    LINUX_SUBSYSTEM = "linux-subsystem"


class DetectionErrorInfo(BaseModel):
    """Structured error attached to a failed detection."""
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    detail: Optional[Any] = None


class DetectionResult(BaseModel):
    """Immutable outcome of one detection attempt.

    Invariants:
    - success implies cli_path is set (and was verified at detection time)
    - a successful linux-subsystem result names its distribution
    - a failed result always carries an error
    """
    model_config = ConfigDict(frozen=True)

    success: bool
    host_platform: HostPlatform
    execution_mode: ExecutionMode = ExecutionMode.NATIVE
    cli_path: Optional[str] = None
    resolved_path: Optional[str] = Field(
        default=None,
        description="Real path after symlink resolution, only when it differs from cli_path"
    )
    version: Optional[str] = None
    detection_method: Optional[str] = Field(
        default=None,
        description="Probing step that succeeded: shell, direct, package-manager:<name>, linux-subsystem, user-configured, cache"
    )
    subsystem_distribution: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[DetectionErrorInfo] = None
    suggestions: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "DetectionResult":
        if self.success:
            if not self.cli_path:
                raise ValueError("successful detection requires cli_path")
            if (
                self.execution_mode == ExecutionMode.LINUX_SUBSYSTEM
                and not self.subsystem_distribution
            ):
                raise ValueError("linux-subsystem detection requires subsystem_distribution")
        elif self.error is None:
            raise ValueError("failed detection requires an error")
        return self

    @property
    def effective_path(self) -> Optional[str]:
        """Path used for de-duplication (resolved when known)."""
        return self.resolved_path or self.cli_path


class CachedResult(BaseModel):
    """On-disk cache document. Timestamps and TTL are in milliseconds."""
    timestamp: int
    platform: HostPlatform
    result: DetectionResult
    ttl: int

    def is_valid(self, now_ms: int, platform: HostPlatform) -> bool:
        return now_ms - self.timestamp < self.ttl and self.platform == platform


class SubsystemDistribution(BaseModel):
    """A WSL distribution as reported by `wsl --list --verbose`."""
    name: str
    version: str
    state: DistributionState
    is_default: bool = False


class SubsystemInfo(BaseModel):
    available: bool
    version: Literal["WSL1", "WSL2", "unknown"] = "unknown"
    distributions: list[SubsystemDistribution] = Field(default_factory=list)
    default_distribution: Optional[str] = None


class PosixShellInfo(BaseModel):
    """Result of locating the Git Bash shell on Windows."""
    available: bool
    shell_path: Optional[str] = None
    tool_version: Optional[str] = None


class ExecutionOptions(BaseModel):
    """Options accepted by every execution entry point."""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    working_directory: Optional[str] = None
    environment_overrides: dict[str, str] = Field(default_factory=dict)
    output_encoding: str = "utf-8"
    use_login_shell: bool = False

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class ProcessResult(BaseModel):
    """Terminal outcome of a one-shot command.

    A non-zero exit is a normal result, never an exception.
    """
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    signal: Optional[str] = None
    timed_out: bool = False
    raw_stdout: bytes = Field(default=b"", exclude=True, repr=False)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def first_line(self) -> Optional[str]:
        """First non-empty stdout line, stripped."""
        for line in self.stdout.splitlines():
            if line.strip():
                return line.strip()
        return None


class InstallationType(str, Enum):
    BUNDLED = "Bundled"
    SYSTEM = "System"
    CUSTOM = "Custom"


class Installation(BaseModel):
    """One discovered installation of the CLI."""
    path: str
    version: Optional[str] = None
    source: str
    installation_type: InstallationType = InstallationType.SYSTEM
    resolved_path: Optional[str] = None
    node_version: Optional[str] = None


class VersionInfo(BaseModel):
    is_installed: bool
    version: Optional[str] = None
    output: str


class DetectionStats(BaseModel):
    """Diagnostics combining the last result with platform metadata."""
    is_detected: bool
    cli_path: Optional[str] = None
    version: Optional[str] = None
    platform: HostPlatform
    execution_mode: ExecutionMode
    detector_type: str
    subsystem_distribution: Optional[str] = None
    detection_method: Optional[str] = None
    last_detection_time: Optional[float] = None
    cache_hit: bool = False


class DetectionConfig(BaseModel):
    """Configuration for detection and execution."""
    # Cache
    cache_file: str = Field(
        default=str(DEFAULT_STATE_DIR / "claude-detection-cache.json"),
        description="Per-user JSON cache of the last detection outcome"
    )
    use_cache: bool = Field(default=True, description="Consult the cache before probing")
    success_ttl_seconds: int = Field(
        default=30 * 60,
        description="Validity of a cached successful detection (30 minutes)"
    )
    failure_ttl_seconds: int = Field(
        default=5 * 60,
        description="Validity of a cached failed detection (5 minutes, so retries come sooner)"
    )

    # Timeouts
    probe_timeout_seconds: float = Field(default=30.0, description="Generic probing command timeout")
    quick_probe_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for lookups such as which/command -v"
    )
    cli_timeout_seconds: float = Field(default=300.0, description="Timeout for CLI invocations")
    kill_grace_period_seconds: float = Field(
        default=5.0,
        description="Wait after a graceful terminate before force-killing the process tree"
    )

    # Lookup
    command_names: list[str] = Field(
        default_factory=lambda: ["claude", "claude-code"],
        description="Candidate command names, tried in order"
    )
    custom_cli_path: Optional[str] = Field(
        default=None,
        description="Explicit CLI path, takes precedence over the settings store"
    )
    extra_search_paths: list[str] = Field(
        default_factory=list,
        description="Directories appended to the enhanced PATH on Unix hosts"
    )

    # Windows
    windows_backend: WindowsBackend = Field(
        default=WindowsBackend.AUTO,
        description="auto picks Git Bash when present, else WSL when present"
    )

    @property
    def cache_path(self) -> Path:
        return Path(os.path.expanduser(self.cache_file))

    def probe_options(self, quick: bool = False, **kwargs: Any) -> ExecutionOptions:
        seconds = self.quick_probe_timeout_seconds if quick else self.probe_timeout_seconds
        return ExecutionOptions(timeout_ms=int(seconds * 1000), **kwargs)

    def cli_options(self, **kwargs: Any) -> ExecutionOptions:
        return ExecutionOptions(timeout_ms=int(self.cli_timeout_seconds * 1000), **kwargs)
