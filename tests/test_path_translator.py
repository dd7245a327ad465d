"""Tests for Windows <-> WSL path translation."""

import pytest

from claude_locator.errors import InvalidConfigurationError
from claude_locator.models import ErrorKind
from claude_locator.path_translator import (
    PathKind,
    PathTranslator,
    detect_path_kind,
    normalize_host_path,
)


@pytest.fixture
def translator():
    return PathTranslator("Ubuntu")


class TestHostToSubsystem:
    """Tests for host_to_subsystem."""

    @pytest.mark.parametrize("host_path,expected", [
        ("C:\\Users\\me\\project", "/mnt/c/Users/me/project"),
        ("D:/work/repo", "/mnt/d/work/repo"),
        ("c:\\", "/mnt/c"),
        ("C:", "/mnt/c"),
        ("E:\\a\\\\b\\", "/mnt/e/a/b"),
        ("C:\\Program Files\\Git", "/mnt/c/Program Files/Git"),
    ])
    def test_drive_paths(self, translator, host_path, expected):
        assert translator.host_to_subsystem(host_path) == expected

    @pytest.mark.parametrize("bad", [
        "\\\\server\\share\\dir",
        "//server/share",
        "relative\\dir",
        "C:foo",
        "",
    ])
    def test_rejects_unmappable(self, translator, bad):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            translator.host_to_subsystem(bad)
        assert exc_info.value.kind == ErrorKind.INVALID_CONFIGURATION


class TestSubsystemToHost:
    """Tests for subsystem_to_host."""

    def test_mount_path(self, translator):
        assert translator.subsystem_to_host("/mnt/d/work/repo") == "D:\\work\\repo"

    def test_drive_root(self, translator):
        assert translator.subsystem_to_host("/mnt/c") == "C:\\"

    @pytest.mark.parametrize("bad", ["/home/me", "/mnt/wsl/x", "/mnt/", "mnt/c/x"])
    def test_rejects_internal_paths(self, translator, bad):
        with pytest.raises(InvalidConfigurationError):
            translator.subsystem_to_host(bad)

    @pytest.mark.parametrize("host_path", [
        "C:\\Users\\me\\project",
        "d:/a/b/c",
        "C:\\",
        "Z:\\deep\\\\nested\\dir\\",
    ])
    def test_round_trip_normalizes(self, translator, host_path):
        back = translator.subsystem_to_host(translator.host_to_subsystem(host_path))
        assert back == normalize_host_path(host_path)


class TestHelpers:
    """Tests for path classification and smart conversion."""

    def test_detect_path_kind(self):
        assert detect_path_kind("C:\\x") == PathKind.HOST
        assert detect_path_kind("/home/me") == PathKind.SUBSYSTEM
        assert detect_path_kind("project") == PathKind.UNKNOWN

    def test_can_map(self, translator):
        assert translator.can_map_to_subsystem("C:\\x")
        assert not translator.can_map_to_subsystem("\\\\srv\\x")
        assert translator.can_map_to_host("/mnt/c/x")
        assert not translator.can_map_to_host("/home/me")

    def test_smart_convert(self, translator):
        assert translator.smart_convert("C:\\x") == "/mnt/c/x"
        assert translator.smart_convert("/mnt/c/x") == "C:\\x"
        assert translator.smart_convert("/home/me") == "/home/me"
        with pytest.raises(InvalidConfigurationError):
            translator.smart_convert("project")

    def test_working_directory_for_cli(self, translator):
        assert translator.working_directory_for_cli("C:\\proj") == "/mnt/c/proj"
