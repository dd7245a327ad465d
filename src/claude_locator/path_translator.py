"""Path translation between Windows and WSL.

Examples:
    C:\\Users\\me\\project  ->  /mnt/c/Users/me/project
    /mnt/d/work           ->  D:\\work

Only drive-letter paths have a mapping. UNC paths, relative paths and WSL
internal paths (e.g. /home/me) are rejected instead of guessed.
"""

import re
from enum import Enum
from typing import Optional

from .errors import InvalidConfigurationError


_DRIVE_PATH = re.compile(r"^([A-Za-z]):(?:[\\/]|$)")
_MOUNT_PATH = re.compile(r"^/mnt/([A-Za-z])(?:/|$)")


class PathKind(str, Enum):
    HOST = "host"
    SUBSYSTEM = "subsystem"
    UNKNOWN = "unknown"


def normalize_host_path(host_path: str) -> str:
    """Canonical Windows form: upper-case drive, backslashes, no duplicate or trailing separators."""
    match = _DRIVE_PATH.match(host_path)
    if not match:
        raise InvalidConfigurationError(f"Unsupported Windows path format: {host_path}")
    parts = [p for p in re.split(r"[\\/]+", host_path[2:]) if p]
    return f"{match.group(1).upper()}:\\" + "\\".join(parts)


def detect_path_kind(path: str) -> PathKind:
    """Classify a path as a Windows host path, a WSL path or unknown."""
    if _DRIVE_PATH.match(path):
        return PathKind.HOST
    if path.startswith("/"):
        return PathKind.SUBSYSTEM
    return PathKind.UNKNOWN


class PathTranslator:
    """Bidirectional Windows <-> WSL path mapping.

    The distribution name is informational: /mnt/<drive> mounts are the same
    in every distribution.
    """

    def __init__(self, distribution: Optional[str] = None):
        self.distribution = distribution

    def host_to_subsystem(self, host_path: str) -> str:
        """Map a Windows drive path into the WSL mount namespace.

        Raises:
            InvalidConfigurationError: For UNC, relative or drive-relative paths.
        """
        if host_path.startswith(("\\\\", "//")):
            raise InvalidConfigurationError(f"UNC paths are not supported: {host_path}")
        if not _DRIVE_PATH.match(host_path):
            raise InvalidConfigurationError(f"Unsupported Windows path format: {host_path}")

        drive = host_path[0].lower()
        parts = [p for p in re.split(r"[\\/]+", host_path[2:]) if p]
        if not parts:
            return f"/mnt/{drive}"
        return f"/mnt/{drive}/" + "/".join(parts)

    def subsystem_to_host(self, subsystem_path: str) -> str:
        """Map a /mnt/<drive>/... path back to Windows.

        Raises:
            InvalidConfigurationError: For WSL internal paths with no Windows equivalent.
        """
        match = _MOUNT_PATH.match(subsystem_path)
        if not match:
            raise InvalidConfigurationError(
                f"WSL internal path cannot be mapped to Windows: {subsystem_path}"
            )
        drive = match.group(1).upper()
        parts = [p for p in subsystem_path[len(match.group(0)):].split("/") if p]
        return f"{drive}:\\" + "\\".join(parts)

    def working_directory_for_cli(self, host_project_path: str) -> str:
        """WSL path the CLI should use as its working directory."""
        return self.host_to_subsystem(host_project_path)

    def can_map_to_subsystem(self, host_path: str) -> bool:
        try:
            self.host_to_subsystem(host_path)
            return True
        except InvalidConfigurationError:
            return False

    def can_map_to_host(self, subsystem_path: str) -> bool:
        try:
            self.subsystem_to_host(subsystem_path)
            return True
        except InvalidConfigurationError:
            return False

    def smart_convert(self, path: str) -> str:
        """Convert in whichever direction the path calls for.

        WSL internal paths are returned unchanged; they already name a
        location the CLI can use.
        """
        kind = detect_path_kind(path)
        if kind == PathKind.HOST:
            return self.host_to_subsystem(path)
        if kind == PathKind.SUBSYSTEM:
            if self.can_map_to_host(path):
                return self.subsystem_to_host(path)
            return path
        raise InvalidConfigurationError(f"Cannot determine path type for: {path}")
