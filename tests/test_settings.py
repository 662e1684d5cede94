import json

import pytest

from live_preview.errors import SettingsError
from live_preview.settings import AutoRefreshMode, Settings, SettingsStore


def test_missing_file_gives_defaults(tmp_path):
    store = SettingsStore.load(tmp_path / "settings.json")

    assert store.get_config() == Settings()
    assert store.path == tmp_path / "settings.json"


def test_load_reads_known_keys(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {"port": 8080, "auto_refresh_mode": "on-save", "colour": "blue"}
        )
    )

    store = SettingsStore.load(path)

    config = store.get_config()
    assert config.port == 8080
    assert config.auto_refresh_mode is AutoRefreshMode.ON_SAVE
    assert "colour" in caplog.text


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2]",
        '{"port": "eighty"}',
        '{"auto_refresh_mode": "sometimes"}',
    ],
)
def test_invalid_files_raise(tmp_path, content):
    path = tmp_path / "settings.json"
    path.write_text(content)

    with pytest.raises(SettingsError):
        SettingsStore.load(path)


def test_update_persists_and_notifies(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path=path)
    changes = []
    store.on_did_change_configuration.event(changes.append)

    store.update("host", "0.0.0.0")

    assert store.get_config().host == "0.0.0.0"
    assert json.loads(path.read_text())["host"] == "0.0.0.0"
    assert len(changes) == 1
    assert changes[0].affects_configuration("host")
    assert not changes[0].affects_configuration("port")


def test_update_with_same_value_is_silent():
    store = SettingsStore()
    changes = []
    store.on_did_change_configuration.event(changes.append)

    store.update("port", store.get_config().port)

    assert changes == []


def test_update_rejects_unknown_and_invalid_values():
    store = SettingsStore()

    with pytest.raises(SettingsError, match="Unknown setting"):
        store.update("colour", "blue")
    with pytest.raises(SettingsError, match="out of range"):
        store.update("port", 70000)
    with pytest.raises(SettingsError):
        store.update("show_server_status_notifications", "yes")


def test_saved_file_round_trips(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(
        Settings(port=4000, auto_refresh_mode=AutoRefreshMode.NEVER), path=path
    )
    store.save()

    assert SettingsStore.load(path).get_config() == store.get_config()


def test_overrides_apply_without_being_saved(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"port": 4000}))
    store = SettingsStore.load(path)

    store.override("port", 8123)
    store.override("auto_refresh_mode", "never")

    assert store.get_config().port == 8123
    assert store.get_config().auto_refresh_mode is AutoRefreshMode.NEVER

    # Persisting another setting keeps the file free of overrides
    store.update("show_server_status_notifications", True)
    saved = json.loads(path.read_text())
    assert saved["port"] == 4000
    assert saved["auto_refresh_mode"] == "on-any-change"
    assert saved["show_server_status_notifications"] is True
    assert store.get_config().port == 8123


def test_update_replaces_override(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path=path)
    store.override("host", "192.0.2.10")
    changes = []
    store.on_did_change_configuration.event(changes.append)

    store.update("host", "127.0.0.1")

    assert store.get_config().host == "127.0.0.1"
    assert len(changes) == 1
    assert changes[0].affects_configuration("host")


def test_override_is_validated():
    store = SettingsStore()

    with pytest.raises(SettingsError):
        store.override("port", "eighty")
