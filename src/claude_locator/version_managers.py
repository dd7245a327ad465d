"""Node.js version managers that may own the Claude CLI.

Each manager knows how to tell whether it is installed and how to ask it
where the CLI lives. The same shell snippets are used natively, inside Git
Bash and inside WSL, so they only rely on POSIX sh syntax.
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class VersionManager:
    """A Node.js version manager and how to query it."""
    name: str
    probe: str              # exits 0 when the manager is installed
    lookup_template: str    # prints the CLI path; {cmd} is the command name

    def lookup_command(self, command_name: str) -> str:
        return self.lookup_template.format(cmd=command_name)


NVM_SOURCE = 'export NVM_DIR="${NVM_DIR:-$HOME/.nvm}"; [ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh"'

# fnm first: it shims per shell session, so the bare PATH lookup misses it.
# The other four are tried in the same order the application always used.
VERSION_MANAGERS: list[VersionManager] = [
    VersionManager(
        name="fnm",
        probe="command -v fnm >/dev/null 2>&1",
        lookup_template=(
            "fnm exec --using=default -- sh -c 'command -v {cmd}' 2>/dev/null"
        ),
    ),
    VersionManager(
        name="nvm",
        probe='[ -s "${NVM_DIR:-$HOME/.nvm}/nvm.sh" ] || command -v nvm >/dev/null 2>&1',
        lookup_template=(
            NVM_SOURCE + "; nvm use default >/dev/null 2>&1; command -v {cmd} 2>/dev/null"
        ),
    ),
    VersionManager(
        name="volta",
        probe="command -v volta >/dev/null 2>&1",
        lookup_template="volta which {cmd} 2>/dev/null",
    ),
    VersionManager(
        name="nodenv",
        probe="command -v nodenv >/dev/null 2>&1",
        lookup_template="nodenv which {cmd} 2>/dev/null",
    ),
    VersionManager(
        name="npm",
        probe="command -v npm >/dev/null 2>&1",
        lookup_template=(
            'prefix="$(npm prefix -g 2>/dev/null)"; '
            'for p in "$prefix/bin/{cmd}" "$prefix/{cmd}" "$prefix/{cmd}.cmd"; do '
            '[ -f "$p" ] && echo "$p" && break; done'
        ),
    ),
]

VERSION_MANAGERS_BY_NAME = {m.name: m for m in VERSION_MANAGERS}

# Makes every installed manager's shims visible to a non-interactive shell
ACTIVATION_PREFIX = "; ".join([
    NVM_SOURCE,
    'command -v fnm >/dev/null 2>&1 && eval "$(fnm env)"',
    '[ -d "${VOLTA_HOME:-$HOME/.volta}/bin" ] && export PATH="${VOLTA_HOME:-$HOME/.volta}/bin:$PATH"',
    'command -v nodenv >/dev/null 2>&1 && eval "$(nodenv init -)"',
]) + ";"

# Install roots searched on the filesystem as a last resort (glob patterns)
KNOWN_INSTALL_GLOBS = [
    "$HOME/.nvm/versions/node/*/bin/{cmd}",
    "$HOME/.local/share/fnm/node-versions/*/installation/bin/{cmd}",
    "$HOME/.fnm/node-versions/*/installation/bin/{cmd}",
    "$HOME/.volta/bin/{cmd}",
    "$HOME/.nodenv/versions/*/bin/{cmd}",
    "$HOME/.npm-global/bin/{cmd}",
    "$HOME/.local/bin/{cmd}",
    "$HOME/.claude/local/{cmd}",
    "/usr/local/bin/{cmd}",
    "/usr/bin/{cmd}",
]


def filesystem_search_command(command_name: str) -> str:
    """Shell snippet printing the first existing executable under known roots."""
    patterns = " ".join(g.format(cmd=command_name) for g in KNOWN_INSTALL_GLOBS)
    return f'for p in {patterns}; do [ -x "$p" ] && echo "$p" && break; done'


_PROVENANCE_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("fnm", re.compile(r"fnm[/\\]node-versions[/\\]v([^/\\]+)")),
    ("fnm", re.compile(r"fnm_multishells[/\\]")),
    ("nvm", re.compile(r"\.nvm[/\\]versions[/\\]node[/\\]v([^/\\]+)")),
    ("nvm", re.compile(r"[/\\]nvm[/\\]v(\d[^/\\]*)")),
    ("volta", re.compile(r"volta[/\\]tools[/\\]image[/\\]node[/\\]([^/\\]+)")),
    ("volta", re.compile(r"[/\\]\.?volta[/\\]")),
    ("nodenv", re.compile(r"\.nodenv[/\\]versions[/\\]([^/\\]+)")),
]


def extract_provenance(resolved_path: Optional[str]) -> dict[str, object]:
    """Work out which version manager owns a binary from its real path.

    Returns:
        Metadata dict with packageManager, nodeVersion (when the path names
        one) and isFromFnm; empty when no manager pattern matches.
    """
    if not resolved_path:
        return {}
    for manager, pattern in _PROVENANCE_PATTERNS:
        match = pattern.search(resolved_path)
        if not match:
            continue
        info: dict[str, object] = {
            "packageManager": manager,
            "isFromFnm": manager == "fnm",
        }
        if match.groups():
            info["nodeVersion"] = match.group(1)
        return info
    return {}


_PATH_LINE = re.compile(r"^(/|[A-Za-z]:[\\/])")


def pick_path_line(output: str) -> Optional[str]:
    """Last line of output that looks like an absolute path.

    Activation snippets can print noise before the path, so the last match
    wins.
    """
    found = None
    for line in output.splitlines():
        line = line.strip()
        if _PATH_LINE.match(line):
            found = line
    return found
