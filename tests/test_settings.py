"""Tests for the settings stores."""

from claude_locator.protocols import SettingsStore
from claude_locator.settings import JsonSettingsStore, MemorySettingsStore


class TestJsonSettingsStore:
    """Tests for JsonSettingsStore."""

    def test_no_file_means_no_override(self, tmp_path):
        store = JsonSettingsStore(tmp_path / "settings.json")
        assert store.get_cli_path() is None

    def test_set_and_get(self, tmp_path):
        path = tmp_path / "dir" / "settings.json"
        JsonSettingsStore(path).set_cli_path("/opt/claude")
        assert JsonSettingsStore(path).get_cli_path() == "/opt/claude"

    def test_clear(self, tmp_path):
        store = JsonSettingsStore(tmp_path / "settings.json")
        store.set_cli_path("/opt/claude")
        store.clear_cli_path()
        assert store.get_cli_path() is None

    def test_corrupt_file_yields_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("][")
        assert JsonSettingsStore(path).get_cli_path() is None

    def test_empty_string_is_no_override(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"claude_binary_path": ""}')
        assert JsonSettingsStore(path).get_cli_path() is None

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(JsonSettingsStore(tmp_path / "s.json"), SettingsStore)


class TestMemorySettingsStore:
    def test_round_trip(self):
        store = MemorySettingsStore()
        store.set_cli_path("/bin/claude")
        assert store.get_cli_path() == "/bin/claude"
        store.clear_cli_path()
        assert store.get_cli_path() is None
        assert isinstance(store, SettingsStore)
