"""Execution helpers for the Windows compatibility layers (WSL and Git Bash)."""

from .posix_shell import PosixShell
from .wsl import LinuxSubsystem, parse_distribution_listing

__all__ = ["LinuxSubsystem", "PosixShell", "parse_distribution_listing"]
