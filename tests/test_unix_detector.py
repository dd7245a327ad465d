"""Tests for the macOS/Linux detector."""

import os
import stat

import pytest

from claude_locator.detectors.base import ProbeStep, parse_version, run_pipeline
from claude_locator.detectors.unix import UnixDetector
from claude_locator.errors import InvalidConfigurationError, NotDetectedError
from claude_locator.models import DetectionConfig, ErrorKind, HostPlatform
from claude_locator.settings import MemorySettingsStore


FNM_CLAUDE = "/home/me/.local/share/fnm/node-versions/v20.10.0/installation/bin/claude"
CLAUDE_VERSION = "1.0.30 (Claude Code)\n"


def make_detector(runner, config, settings=None):
    return UnixDetector(runner, HostPlatform.LINUX, config=config, settings=settings)


def executable(path, content="#!/bin/sh\necho '1.0.30 (Claude Code)'\n"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class TestPipelineHelpers:
    """Tests for parse_version and run_pipeline."""

    def test_parse_version(self):
        assert parse_version("1.0.30 (Claude Code)") == "1.0.30"
        assert parse_version("claude v2.10.3-beta") == "2.10.3"
        assert parse_version("Claude Code") == "unknown"

    @pytest.mark.asyncio
    async def test_raising_step_is_skipped(self, runner, config):
        detector = make_detector(runner, config)
        expected = detector.success("/bin/claude", "1.0.0", "second")

        async def boom():
            raise RuntimeError("probe exploded")

        async def nothing():
            return None

        async def found():
            return expected

        steps = [ProbeStep("boom", boom), ProbeStep("nothing", nothing), ProbeStep("found", found)]
        assert await run_pipeline(steps) is expected

    @pytest.mark.asyncio
    async def test_exhausted_pipeline(self):
        async def nothing():
            return None

        assert await run_pipeline([ProbeStep("a", nothing)]) is None


class TestVersionManagerDetection:
    """Detection through a version manager (fnm installed)."""

    @pytest.mark.asyncio
    async def test_fnm_shim(self, runner, config):
        runner.when("fnm exec", stdout=FNM_CLAUDE + "\n")
        runner.when("command -v fnm", stdout="")
        runner.when(lambda c: c.endswith("claude --version"), stdout=CLAUDE_VERSION)

        result = await make_detector(runner, config).detect()

        assert result.success
        assert result.cli_path == FNM_CLAUDE
        assert result.version == "1.0.30"
        assert result.detection_method == "package-manager:fnm"
        assert result.metadata["packageManager"] == "fnm"
        assert result.metadata["nodeVersion"] == "20.10.0"
        assert result.metadata["isFromFnm"] is True

    @pytest.mark.asyncio
    async def test_lookups_use_login_shell(self, runner, config):
        runner.when("command -v fnm", stdout="")
        await make_detector(runner, config).detect()
        command, options = runner.calls[0]
        assert command.startswith("command -v fnm")
        assert options.use_login_shell

    @pytest.mark.asyncio
    async def test_second_detection_hits_cache(self, runner, config):
        runner.when("fnm exec", stdout=FNM_CLAUDE + "\n")
        runner.when("command -v fnm", stdout="")
        runner.when(lambda c: c.endswith("claude --version"), stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config)

        first = await detector.detect()
        calls = len(runner.calls)
        second = await detector.detect()

        assert len(runner.calls) == calls
        assert second.detection_method == "cache"
        assert second.metadata["cachedDetectionMethod"] == "package-manager:fnm"
        assert second.cli_path == first.cli_path
        assert detector.cache_hit

    @pytest.mark.asyncio
    async def test_cache_disabled(self, runner, tmp_path):
        config = DetectionConfig(cache_file=str(tmp_path / "c.json"), use_cache=False)
        detector = make_detector(runner, config)
        await detector.detect()
        calls = len(runner.calls)
        result = await detector.detect()
        assert len(runner.calls) == 2 * calls
        assert result.detection_method != "cache"


class TestShellDetection:
    """Detection through the PATH of the login shell (no version managers)."""

    @pytest.mark.asyncio
    async def test_plain_install(self, runner, config):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)

        result = await make_detector(runner, config).detect()

        assert result.success
        assert result.cli_path == "/usr/local/bin/claude"
        assert result.detection_method == "shell"
        assert result.version == "1.0.30"

    @pytest.mark.asyncio
    async def test_detected_path_verifies(self, runner, config):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config)

        result = await detector.detect()

        assert await detector.verify(result.cli_path)
        assert not await detector.verify("/usr/bin/python3")

    @pytest.mark.asyncio
    async def test_symlink_resolution_and_provenance(self, runner, config, tmp_path):
        target = executable(tmp_path / ".nvm" / "versions" / "node" / "v18.17.0" / "bin" / "claude")
        link = tmp_path / "bin" / "claude"
        link.parent.mkdir()
        link.symlink_to(target)
        runner.when("|| which claude", stdout=f"{link}\n")
        runner.when(lambda c: c.endswith("claude --version"), stdout=CLAUDE_VERSION)

        result = await make_detector(runner, config).detect()

        assert result.cli_path == str(link)
        assert result.resolved_path == os.path.realpath(target)
        assert result.metadata["packageManager"] == "nvm"
        assert result.metadata["nodeVersion"] == "18.17.0"

    @pytest.mark.asyncio
    async def test_second_command_name(self, runner, config):
        runner.when("|| which claude-code", stdout="/opt/bin/claude-code\n")
        runner.when("/opt/bin/claude-code --version", stdout="claude-code 0.2.9\n")
        result = await make_detector(runner, config).detect()
        assert result.cli_path == "/opt/bin/claude-code"
        assert result.version == "0.2.9"

    @pytest.mark.asyncio
    async def test_candidate_failing_verification_is_skipped(self, runner, config):
        runner.when("|| which claude", stdout="/usr/bin/claude\n")
        runner.when("/usr/bin/claude --version", stdout="some other tool 1.2.3\n")
        result = await make_detector(runner, config).detect()
        assert not result.success


class TestDirectDetection:
    @pytest.mark.asyncio
    async def test_direct_execution(self, runner, config):
        runner.when(lambda c: c == "claude --version", stdout=CLAUDE_VERSION)
        result = await make_detector(runner, config).detect()
        assert result.success
        assert result.detection_method == "direct"
        assert result.version == "1.0.30"


class TestUserOverride:
    """Tests for the user-configured path and final error selection."""

    @pytest.mark.asyncio
    async def test_override_used_last(self, runner, config, tmp_path):
        binary = executable(tmp_path / "custom" / "claude")
        runner.when(f"{binary} --version", stdout=CLAUDE_VERSION)
        settings = MemorySettingsStore(str(binary))

        result = await make_detector(runner, config, settings).detect()

        assert result.success
        assert result.detection_method == "user-configured"
        assert result.cli_path == str(binary)

    @pytest.mark.asyncio
    async def test_config_override_wins_over_settings(self, runner, tmp_path):
        binary = executable(tmp_path / "explicit" / "claude")
        config = DetectionConfig(cache_file=str(tmp_path / "c.json"), custom_cli_path=str(binary))
        runner.when(f"{binary} --version", stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config, MemorySettingsStore("/elsewhere/claude"))
        result = await detector.detect()
        assert result.cli_path == str(binary)

    @pytest.mark.asyncio
    async def test_relative_override_is_invalid_configuration(self, runner, config):
        result = await make_detector(runner, config, MemorySettingsStore("bin/claude")).detect()
        assert not result.success
        assert result.error.kind == ErrorKind.INVALID_CONFIGURATION
        assert result.suggestions

    @pytest.mark.asyncio
    async def test_non_executable_override_is_permission_denied(self, runner, config, tmp_path):
        binary = tmp_path / "claude"
        binary.write_text("not executable")
        binary.chmod(0o644)
        result = await make_detector(runner, config, MemorySettingsStore(str(binary))).detect()
        assert result.error.kind == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_missing_override_is_not_found(self, runner, config, tmp_path):
        settings = MemorySettingsStore(str(tmp_path / "gone" / "claude"))
        result = await make_detector(runner, config, settings).detect()
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestNotFound:
    @pytest.mark.asyncio
    async def test_not_found_has_suggestions(self, runner, config):
        result = await make_detector(runner, config).detect()
        assert not result.success
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert any("npm install -g @anthropic-ai/claude-code" in s for s in result.suggestions)

    @pytest.mark.asyncio
    async def test_failure_is_cached(self, runner, config):
        detector = make_detector(runner, config)
        await detector.detect()
        result = await detector.detect()
        assert result.detection_method == "cache"
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestInvocation:
    """Tests for execute and interactive sessions."""

    @pytest.mark.asyncio
    async def test_execute_before_detection(self, runner, config):
        with pytest.raises(NotDetectedError):
            await make_detector(runner, config).execute(["--help"])

    @pytest.mark.asyncio
    async def test_get_version_before_detection(self, runner, config):
        with pytest.raises(NotDetectedError):
            await make_detector(runner, config).get_version()

    @pytest.mark.asyncio
    async def test_execute_after_detection(self, runner, config, tmp_path):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)
        runner.when("/usr/local/bin/claude -p hello", stdout="hi there\n")
        detector = make_detector(runner, config)
        await detector.detect()

        result = await detector.execute(["-p", "hello"], str(tmp_path))

        command, options = runner.calls[-1]
        assert result.stdout == "hi there\n"
        assert command == ["/usr/local/bin/claude", "-p", "hello"]
        assert options.working_directory == str(tmp_path)
        assert options.timeout_ms == 300_000
        assert options.environment_overrides["PATH"].startswith("/usr/local/bin")
        assert detector.is_available()
        assert await detector.get_version() == "1.0.30"

    @pytest.mark.asyncio
    async def test_execute_rejects_missing_working_dir(self, runner, config, tmp_path):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config)
        await detector.detect()
        with pytest.raises(InvalidConfigurationError):
            await detector.execute(["--help"], str(tmp_path / "missing"))

    @pytest.mark.asyncio
    async def test_interactive_session_closes_stdin(self, runner, config, tmp_path):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config)
        await detector.detect()

        session = await detector.start_interactive_session(str(tmp_path), ["--resume"])

        assert session.command == "/usr/local/bin/claude"
        assert session.args == ["--resume"]
        assert session.options.working_directory == str(tmp_path)
        assert session.stdin_closed

    @pytest.mark.asyncio
    async def test_interactive_session_keeps_stdin(self, runner, config, tmp_path):
        runner.when("|| which claude", stdout="/usr/local/bin/claude\n")
        runner.when("/usr/local/bin/claude --version", stdout=CLAUDE_VERSION)
        detector = make_detector(runner, config)
        await detector.detect()
        session = await detector.start_interactive_session(str(tmp_path), close_stdin=False)
        assert not session.stdin_closed


class TestScanKnownLocations:
    def test_finds_nvm_and_fnm_installs(self, runner, config, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        nvm = executable(tmp_path / ".nvm" / "versions" / "node" / "v20.1.0" / "bin" / "claude")
        fnm = executable(
            tmp_path / ".local" / "share" / "fnm" / "node-versions" / "v18.0.0" / "installation" / "bin" / "claude"
        )
        (tmp_path / ".nvm" / "versions" / "node" / "v16.0.0" / "bin").mkdir(parents=True)

        found = make_detector(runner, config).scan_known_locations()

        assert found == [str(nvm), str(fnm)]
