"""Helpers for running commands inside WSL distributions.

`wsl.exe` writes its own messages (distribution listings, errors) as UTF-16LE
on most Windows builds, while commands run inside a distribution produce
UTF-8. Listing output is therefore decoded from raw bytes.
"""

import codecs
import logging
import re
import shlex
import unicodedata
from typing import Optional, Sequence, Union

from ..models import (
    DetectionConfig,
    DistributionState,
    ExecutionOptions,
    ProcessResult,
    SubsystemDistribution,
    SubsystemInfo,
)
from ..protocols import CommandRunner
from ..version_managers import ACTIVATION_PREFIX

logger = logging.getLogger(__name__)


WSL_EXECUTABLE = "wsl.exe"

# Localized spellings of the STATE column
RUNNING_STATES = {
    "running",
    "运行中",
    "正在运行",
    "wird ausgeführt",
    "en cours d'exécution",
    "en ejecución",
    "em execução",
    "in esecuzione",
    "実行中",
    "실행 중",
}
STOPPED_STATES = {
    "stopped",
    "已停止",
    "beendet",
    "angehalten",
    "arrêté",
    "detenido",
    "parado",
    "interrotto",
    "停止",
    "중지됨",
}

# Order matters: the first variant that succeeds wins
RUN_VARIANTS = ["direct", "login-shell", "login-shell+profile", "version-manager"]

PROFILE_PREFIX = "[ -f ~/.profile ] && . ~/.profile; [ -f ~/.bashrc ] && . ~/.bashrc;"

_DISTRIBUTION_NAME = re.compile(r"^[\w.\-]+$")


def decode_listing(raw: Union[bytes, str]) -> str:
    """Decode wsl.exe output that may be UTF-16LE, UTF-8 or a mangled mix."""
    if isinstance(raw, bytes):
        if raw.startswith(codecs.BOM_UTF16_LE) or raw.count(b"\x00") > len(raw) // 4:
            text = raw.decode("utf-16-le", errors="replace")
        else:
            text = raw.decode("utf-8", errors="replace")
    else:
        text = raw
    text = text.replace("\ufeff", "").replace("\x00", "")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _clean(line: str) -> str:
    return "".join(
        ch for ch in line
        if ch in (" ", "\t") or not unicodedata.category(ch).startswith("C")
    ).strip()


def _parse_state(text: str) -> Optional[DistributionState]:
    text = text.lower()
    if text in RUNNING_STATES:
        return DistributionState.RUNNING
    if text in STOPPED_STATES:
        return DistributionState.STOPPED
    return None


def parse_distribution_listing(raw: Union[bytes, str]) -> list[SubsystemDistribution]:
    """Parse `wsl --list --verbose` output.

    Lines look like `* Ubuntu    Running   2`. The header row and any line
    that does not parse (unknown state, stray characters) are skipped.
    """
    distributions = []
    for line in decode_listing(raw).split("\n"):
        line = _clean(line)
        if not line:
            continue
        tokens = line.split()
        is_default = False
        if tokens[0] == "*":
            is_default = True
            tokens = tokens[1:]
        elif tokens[0].startswith("*"):
            is_default = True
            tokens[0] = tokens[0][1:]
        if len(tokens) < 3 or tokens[0].upper() == "NAME":
            continue

        name, version = tokens[0], tokens[-1]
        state = _parse_state(" ".join(tokens[1:-1]))
        if state is None or not version.isdigit() or not _DISTRIBUTION_NAME.match(name):
            logger.debug("Skipping unparsable WSL listing line: %r", line)
            continue
        distributions.append(SubsystemDistribution(
            name=name,
            version=version,
            state=state,
            is_default=is_default,
        ))
    return distributions


def parse_wsl_version(
    version_output: str,
    distributions: Sequence[SubsystemDistribution] = ()
) -> str:
    """WSL1 / WSL2 / unknown.

    The default distribution's version column is authoritative; the
    `wsl --version` banner is only a fallback.
    """
    for dist in sorted(distributions, key=lambda d: not d.is_default):
        if dist.version in ("1", "2"):
            return f"WSL{dist.version}"
    if re.search(r"WSL\s*2", version_output):
        return "WSL2"
    if re.search(r"WSL\s*1", version_output):
        return "WSL1"
    return "unknown"


class LinuxSubsystem:
    """Runs probes and CLI invocations inside WSL distributions."""

    def __init__(
        self,
        runner: CommandRunner,
        config: Optional[DetectionConfig] = None,
        executable: str = WSL_EXECUTABLE
    ):
        self.runner = runner
        self.config = config or DetectionConfig()
        self.executable = executable

    async def list_distributions(self) -> list[SubsystemDistribution]:
        """Installed distributions, empty if WSL is missing or unreadable."""
        result = await self.runner.run(
            [self.executable, "--list", "--verbose"],
            self.config.probe_options(quick=True),
        )
        if not result.ok:
            logger.debug("wsl --list failed (exit %s): %s", result.exit_code, result.stderr.strip())
            return []
        return parse_distribution_listing(result.raw_stdout or result.stdout)

    async def detect_environment(self) -> SubsystemInfo:
        """Check whether WSL is usable and which distributions it has."""
        listing = await self.runner.run(
            [self.executable, "--list", "--verbose"],
            self.config.probe_options(quick=True),
        )
        if not listing.ok:
            logger.debug("WSL not available (exit %s)", listing.exit_code)
            return SubsystemInfo(available=False)

        distributions = parse_distribution_listing(listing.raw_stdout or listing.stdout)
        banner = await self.runner.run(
            [self.executable, "--version"],
            self.config.probe_options(quick=True),
        )
        version_text = decode_listing(banner.raw_stdout or banner.stdout) if banner.ok else ""

        default = next((d.name for d in distributions if d.is_default), None)
        if default is None and distributions:
            default = distributions[0].name

        return SubsystemInfo(
            available=bool(distributions),
            version=parse_wsl_version(version_text, distributions),
            distributions=distributions,
            default_distribution=default,
        )

    def build_command(
        self,
        distribution: str,
        command: str,
        variant: str,
        working_directory: Optional[str] = None
    ) -> list[str]:
        """argv running a shell command line in distribution using variant."""
        base = [self.executable, "-d", distribution]
        if working_directory:
            base += ["--cd", working_directory]
        base.append("--")
        if variant == "direct":
            return [*base, "sh", "-c", command]
        if variant == "login-shell":
            return [*base, "bash", "-lc", command]
        if variant == "login-shell+profile":
            return [*base, "bash", "-lc", f"{PROFILE_PREFIX} {command}"]
        if variant == "version-manager":
            return [*base, "bash", "-lc", f"{ACTIVATION_PREFIX} {command}"]
        raise ValueError(f"Unknown WSL run variant: {variant}")

    async def run_with_variant(
        self,
        distribution: str,
        command: str,
        options: Optional[ExecutionOptions] = None,
        variants: Sequence[str] = RUN_VARIANTS
    ) -> tuple[ProcessResult, Optional[str]]:
        """Like run_in, also naming the variant that succeeded (None if none did)."""
        options = options or self.config.probe_options()
        result = ProcessResult(exit_code=1, stderr="no run variant attempted")
        for variant in variants:
            result = await self.runner.run(self.build_command(distribution, command, variant), options)
            if result.ok and result.stdout.strip():
                logger.debug("WSL %s: %r succeeded via %s", distribution, command[:80], variant)
                return result, variant
            logger.debug(
                "WSL %s: %r failed via %s (exit %s)",
                distribution, command[:80], variant, result.exit_code
            )
        return result, None

    async def run_in(
        self,
        distribution: str,
        command: str,
        options: Optional[ExecutionOptions] = None,
        variants: Sequence[str] = RUN_VARIANTS
    ) -> ProcessResult:
        """Run command inside distribution, trying each variant in order.

        Returns:
            The first result that exits 0 with output, else the last failure.
        """
        result, _ = await self.run_with_variant(distribution, command, options, variants)
        return result

    def direct_argv(
        self,
        distribution: str,
        argv: Sequence[str],
        working_directory: Optional[str] = None,
        variant: str = "direct"
    ) -> list[str]:
        """argv invoking a program in distribution, optionally from a WSL directory.

        Any variant other than direct wraps the program in the same shell setup
        that verified it, so `#!/usr/bin/env node` shims still find node.
        """
        if variant != "direct":
            return self.build_command(distribution, shlex.join(argv), variant, working_directory)
        command = [self.executable, "-d", distribution]
        if working_directory:
            command += ["--cd", working_directory]
        return [*command, "--", *argv]

    async def run_direct(
        self,
        distribution: str,
        argv: Sequence[str],
        working_directory: Optional[str] = None,
        options: Optional[ExecutionOptions] = None,
        variant: str = "direct"
    ) -> ProcessResult:
        """Run a program inside distribution, through the shell setup of variant."""
        return await self.runner.run(
            self.direct_argv(distribution, argv, working_directory, variant),
            options or self.config.cli_options(),
        )
