"""Platform detectors: one strategy class per kind of host."""

from .base import PlatformDetector, ProbeStep, parse_version, run_pipeline
from .unix import UnixDetector
from .windows import WindowsDetector, classify_environment
from .wsl import WslDetector

__all__ = [
    "PlatformDetector",
    "ProbeStep",
    "UnixDetector",
    "WindowsDetector",
    "WslDetector",
    "classify_environment",
    "parse_version",
    "run_pipeline",
]
