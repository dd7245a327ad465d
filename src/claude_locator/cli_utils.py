"""Utilities for finding and invoking external CLI tools.

Provides the host-level pieces the detectors share: host platform
identification, the login shell, PATH augmentation for GUI-launched
processes, recovery of the login shell environment, and a quick synchronous
lookup of the Claude CLI.
"""

import logging
import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .errors import UnsupportedPlatformError
from .models import HostPlatform

logger = logging.getLogger(__name__)


CLI_COMMAND_NAMES = ["claude", "claude-code"]

# Variables worth importing from a login shell: version managers rely on them
SHELL_ENV_VARIABLES = [
    "PATH",
    "NODE_PATH",
    "NVM_DIR",
    "NVM_BIN",
    "FNM_DIR",
    "FNM_MULTISHELL_PATH",
    "VOLTA_HOME",
    "N_PREFIX",
    "NODENV_ROOT",
    "VFOX_HOME",
    "LANG",
    "LC_ALL",
    "HOME",
    "USER",
]


def current_host_platform(platform: Optional[str] = None) -> HostPlatform:
    """Map sys.platform onto HostPlatform.

    Raises:
        UnsupportedPlatformError: For hosts other than macOS, Linux and Windows.
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return HostPlatform.DARWIN
    if platform.startswith("linux"):
        return HostPlatform.LINUX
    if platform == "win32":
        return HostPlatform.WINDOWS
    raise UnsupportedPlatformError(f"Unsupported platform: {platform}")


def default_shell() -> str:
    """The user's login shell, falling back to bash."""
    return os.environ.get("SHELL") or "/bin/bash"


def well_known_directories(home: Optional[Path] = None) -> list[str]:
    """Installation directories GUI processes usually miss on their PATH."""
    home = home or Path.home()
    return [
        "/usr/local/bin",
        "/opt/homebrew/bin",
        "/opt/homebrew/sbin",
        "/usr/bin",
        "/bin",
        str(home / ".local" / "bin"),
        str(home / ".npm" / "bin"),
        str(home / ".npm-global" / "bin"),
        str(home / ".yarn" / "bin"),
        str(home / ".fnm"),
        str(home / ".volta" / "bin"),
        str(home / ".nodenv" / "shims"),
        str(home / ".config" / "yarn" / "global" / "node_modules" / ".bin"),
        str(home / ".version-fox" / "shims"),
        str(home / ".claude" / "local"),
        "/opt/local/bin",
    ]


def enhanced_path(
    current: Optional[str] = None,
    extra: Iterable[str] = (),
    home: Optional[Path] = None
) -> str:
    """Return PATH with the well-known directories appended (deduplicated).

    Existing entries keep their order and precedence.
    """
    current = os.environ.get("PATH", "") if current is None else current
    entries: list[str] = []
    for entry in current.split(os.pathsep):
        if entry and entry not in entries:
            entries.append(entry)
    for entry in [*well_known_directories(home), *extra]:
        if entry and "*" not in entry and entry not in entries:
            entries.append(entry)
    return os.pathsep.join(entries)


def login_shell_command(command: str, shell: Optional[str] = None, interactive: bool = False) -> list[str]:
    """Wrap a command so the user's shell init files are honored."""
    flags = "-lic" if interactive else "-lc"
    return [shell or default_shell(), flags, command]


def join_command(argv: Sequence[str]) -> str:
    """Render argv as a POSIX shell command line."""
    return shlex.join(argv)


def parse_env_output(output: str) -> dict[str, str]:
    """Parse `env` output into a dict, skipping malformed lines."""
    env: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key and " " not in key:
            env[key] = value
    return env


def load_shell_environment(timeout: float = 5.0) -> bool:
    """Import version-manager variables from the user's login shell.

    GUI applications on macOS do not inherit the terminal environment, so
    PATH changes made by nvm/fnm/volta in ~/.zshrc are invisible to them.
    This runs `$SHELL -l -i -c env` once and merges the relevant variables
    into os.environ, then appends the well-known directories to PATH.

    Returns:
        True if the login shell environment was loaded, False otherwise.
        Failures are logged and never raised.
    """
    if sys.platform not in ("darwin",) and not sys.platform.startswith("linux"):
        return False

    try:
        result = subprocess.run(
            login_shell_command("env", interactive=True),
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        logger.warning("Failed to load shell environment: %s", e)
        os.environ["PATH"] = enhanced_path()
        return False

    if result.returncode != 0:
        logger.warning("Login shell exited with %s while loading environment", result.returncode)
        os.environ["PATH"] = enhanced_path()
        return False

    shell_env = parse_env_output(result.stdout)
    for name in SHELL_ENV_VARIABLES:
        if shell_env.get(name):
            os.environ[name] = shell_env[name]

    os.environ["PATH"] = enhanced_path()
    logger.debug("Shell environment loaded, PATH=%s", os.environ["PATH"][:200])
    return True


def find_cli_executable(command_names: Sequence[str] = CLI_COMMAND_NAMES) -> Optional[str]:
    """Quick synchronous lookup of the Claude CLI.

    Searches in order:
    1. PATH (via shutil.which), for every candidate name
    2. Windows-specific: .cmd shims and npm global locations
    3. Unix-specific: well-known installation directories

    This does not verify the binary; detectors do that.

    Returns:
        Path to the claude executable, or None if not found.
    """
    for name in command_names:
        found = shutil.which(name)
        if found:
            return found

    if sys.platform == "win32":
        for name in command_names:
            found = shutil.which(f"{name}.cmd")
            if found:
                return found

        npm_dirs = [
            Path(os.environ.get("APPDATA", "")) / "npm",
            Path(os.environ.get("LOCALAPPDATA", "")) / "npm",
            Path.home() / "AppData" / "Roaming" / "npm",
        ]
        # nvm for Windows puts binaries behind this symlink
        if os.environ.get("NVM_SYMLINK"):
            npm_dirs.append(Path(os.environ["NVM_SYMLINK"]))
        for directory in npm_dirs:
            for name in command_names:
                candidate = directory / f"{name}.cmd"
                if candidate.exists():
                    return str(candidate)
        return None

    for directory in well_known_directories():
        for name in command_names:
            candidate = Path(directory) / name
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)

    return None
