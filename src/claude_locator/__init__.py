"""Locate, verify and run the Claude CLI across macOS, Linux, Git Bash and WSL."""

from .errors import InvalidConfigurationError, LocatorError, NotDetectedError, UnsupportedPlatformError
from .execution import InteractiveSession, SubprocessRunner
from .manager import DetectionManager, create_detector
from .models import (
    DetectionConfig,
    DetectionResult,
    ErrorKind,
    ExecutionMode,
    ExecutionOptions,
    HostPlatform,
    ProcessResult,
)
from .path_translator import PathTranslator
from .settings import JsonSettingsStore, MemorySettingsStore

__all__ = [
    "DetectionConfig",
    "DetectionManager",
    "DetectionResult",
    "ErrorKind",
    "ExecutionMode",
    "ExecutionOptions",
    "HostPlatform",
    "InteractiveSession",
    "InvalidConfigurationError",
    "JsonSettingsStore",
    "LocatorError",
    "MemorySettingsStore",
    "NotDetectedError",
    "PathTranslator",
    "ProcessResult",
    "SubprocessRunner",
    "UnsupportedPlatformError",
    "create_detector",
]
