"""Tests for the WSL execution helpers."""

import codecs

import pytest

from claude_locator.models import DistributionState
from claude_locator.subsystems.wsl import (
    RUN_VARIANTS,
    LinuxSubsystem,
    decode_listing,
    parse_distribution_listing,
    parse_wsl_version,
)


LISTING = (
    "  NAME            STATE           VERSION\r\n"
    "* Ubuntu-22.04    Running         2\r\n"
    "  Debian          Stopped         2\r\n"
    "  docker-desktop  Stopped         2\r\n"
)


def utf16(text: str, bom: bool = False) -> bytes:
    data = text.encode("utf-16-le")
    return codecs.BOM_UTF16_LE + data if bom else data


class TestDecodeListing:
    """Tests for decode_listing."""

    def test_utf16_without_bom(self):
        assert "Ubuntu-22.04" in decode_listing(utf16(LISTING))

    def test_utf16_with_bom(self):
        text = decode_listing(utf16(LISTING, bom=True))
        assert not text.startswith("\ufeff")
        assert text.startswith("  NAME")

    def test_plain_utf8(self):
        assert decode_listing(LISTING.encode("utf-8")) == LISTING.replace("\r\n", "\n")

    def test_str_with_residual_nulls(self):
        mangled = "\x00".join("* Ubuntu Running 2")
        assert decode_listing(mangled) == "* Ubuntu Running 2"


class TestParseDistributionListing:
    """Tests for parse_distribution_listing."""

    def test_utf16_listing(self):
        distributions = parse_distribution_listing(utf16(LISTING))
        assert [d.name for d in distributions] == ["Ubuntu-22.04", "Debian", "docker-desktop"]
        assert distributions[0].is_default
        assert distributions[0].state == DistributionState.RUNNING
        assert distributions[1].state == DistributionState.STOPPED
        assert all(d.version == "2" for d in distributions)

    def test_names_have_no_control_characters(self):
        for dist in parse_distribution_listing(utf16(LISTING, bom=True)):
            assert all(ch.isprintable() for ch in dist.name)
            assert "\x00" not in dist.name

    def test_null_interleaved_string(self):
        # UTF-16 bytes that were wrongly decoded as UTF-8 upstream
        mangled = utf16(LISTING).decode("utf-8", errors="replace")
        names = [d.name for d in parse_distribution_listing(mangled)]
        assert names == ["Ubuntu-22.04", "Debian", "docker-desktop"]

    @pytest.mark.parametrize("state,expected", [
        ("运行中", DistributionState.RUNNING),
        ("已停止", DistributionState.STOPPED),
        ("Wird ausgeführt", DistributionState.RUNNING),
        ("Beendet", DistributionState.STOPPED),
        ("En cours d'exécution", DistributionState.RUNNING),
        ("Arrêté", DistributionState.STOPPED),
        ("En ejecución", DistributionState.RUNNING),
        ("Detenido", DistributionState.STOPPED),
    ])
    def test_localized_states(self, state, expected):
        listing = f"  NAME   STATE   VERSION\r\n* Ubuntu   {state}   2\r\n"
        [dist] = parse_distribution_listing(utf16(listing))
        assert dist.name == "Ubuntu"
        assert dist.state == expected

    def test_default_marker_glued_to_name(self):
        [dist] = parse_distribution_listing("*Ubuntu Running 2\n")
        assert dist.name == "Ubuntu"
        assert dist.is_default

    def test_unparsable_lines_are_skipped(self):
        listing = (
            "NAME STATE VERSION\n"
            "* Ubuntu Running 2\n"
            "garbage\n"
            "  Alpine Converting 2\n"
            "  Fedora Stopped two\n"
            "  Kali Stopped 1\n"
        )
        names = [d.name for d in parse_distribution_listing(listing)]
        assert names == ["Ubuntu", "Kali"]

    def test_empty_output(self):
        assert parse_distribution_listing(b"") == []


class TestParseWslVersion:
    def test_default_distribution_wins(self):
        distributions = parse_distribution_listing("  Old Stopped 1\n* New Running 2\n")
        assert parse_wsl_version("", distributions) == "WSL2"

    def test_banner_fallback(self):
        assert parse_wsl_version("WSL 1") == "WSL1"
        assert parse_wsl_version("nothing useful") == "unknown"


class TestLinuxSubsystem:
    """Tests for LinuxSubsystem against a scripted runner."""

    @pytest.mark.asyncio
    async def test_detect_environment(self, runner, config):
        runner.when("--list --verbose", raw_stdout=utf16(LISTING))
        info = await LinuxSubsystem(runner, config).detect_environment()
        assert info.available
        assert info.version == "WSL2"
        assert info.default_distribution == "Ubuntu-22.04"
        assert len(info.distributions) == 3

    @pytest.mark.asyncio
    async def test_unavailable_when_listing_fails(self, runner, config):
        runner.when("--list --verbose", exit_code=1, stderr="not installed")
        info = await LinuxSubsystem(runner, config).detect_environment()
        assert not info.available
        assert info.distributions == []

    @pytest.mark.asyncio
    async def test_no_distributions_is_unavailable(self, runner, config):
        runner.when("--list --verbose", raw_stdout=utf16("  NAME STATE VERSION\r\n"))
        info = await LinuxSubsystem(runner, config).detect_environment()
        assert not info.available

    @pytest.mark.asyncio
    async def test_list_distributions(self, runner, config):
        runner.when("--list --verbose", raw_stdout=utf16(LISTING))
        distributions = await LinuxSubsystem(runner, config).list_distributions()
        assert [d.name for d in distributions][0] == "Ubuntu-22.04"

    def test_build_command_variants(self, runner, config):
        subsystem = LinuxSubsystem(runner, config)
        assert subsystem.build_command("Ubuntu", "which claude", "direct") == [
            "wsl.exe", "-d", "Ubuntu", "--", "sh", "-c", "which claude"
        ]
        assert subsystem.build_command("Ubuntu", "which claude", "login-shell")[-2:] == [
            "-lc", "which claude"
        ]
        assert "nvm.sh" in subsystem.build_command("Ubuntu", "which claude", "version-manager")[-1]
        with pytest.raises(ValueError):
            subsystem.build_command("Ubuntu", "x", "bogus")

    @pytest.mark.asyncio
    async def test_run_in_returns_first_success(self, runner, config):
        runner.when(lambda c: "bash -lc" in c and ".profile" not in c, stdout="/usr/bin/claude\n")
        result = await LinuxSubsystem(runner, config).run_in("Ubuntu", "which claude")
        assert result.stdout.strip() == "/usr/bin/claude"
        # direct failed, login-shell succeeded, later variants never ran
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_run_in_requires_output(self, runner, config):
        runner.when(lambda c: "sh -c" in c, stdout="")
        runner.when(lambda c: ".profile" in c, stdout="found\n")
        result = await LinuxSubsystem(runner, config).run_in("Ubuntu", "which claude")
        assert result.stdout == "found\n"

    @pytest.mark.asyncio
    async def test_run_in_all_fail_returns_last(self, runner, config):
        result = await LinuxSubsystem(runner, config).run_in("Ubuntu", "which claude")
        assert not result.ok
        assert len(runner.calls) == len(RUN_VARIANTS)

    @pytest.mark.asyncio
    async def test_run_direct_targets_directory(self, runner, config):
        runner.when("--cd", stdout="ok")
        await LinuxSubsystem(runner, config).run_direct("Debian", ["claude", "-p", "hi"], "/mnt/c/proj")
        command, options = runner.calls[-1]
        assert command == ["wsl.exe", "-d", "Debian", "--cd", "/mnt/c/proj", "--", "claude", "-p", "hi"]
        assert options.timeout_ms == 300_000

    @pytest.mark.asyncio
    async def test_run_with_variant_names_winner(self, runner, config):
        runner.when(lambda c: ".profile" in c, stdout="found\n")
        result, variant = await LinuxSubsystem(runner, config).run_with_variant("Ubuntu", "which claude")
        assert result.stdout == "found\n"
        assert variant == "login-shell+profile"

    @pytest.mark.asyncio
    async def test_run_with_variant_none_succeeded(self, runner, config):
        _, variant = await LinuxSubsystem(runner, config).run_with_variant("Ubuntu", "which claude")
        assert variant is None

    def test_direct_argv_with_shell_variant(self, runner, config):
        argv = LinuxSubsystem(runner, config).direct_argv(
            "Ubuntu", ["/opt/claude", "-p", "hi there"], "/mnt/c/proj", "login-shell"
        )
        assert argv == [
            "wsl.exe", "-d", "Ubuntu", "--cd", "/mnt/c/proj", "--",
            "bash", "-lc", "/opt/claude -p 'hi there'",
        ]
