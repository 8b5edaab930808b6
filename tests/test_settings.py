import json
from pathlib import Path

import pytest

from kolosal.settings import DEFAULT_SETTINGS, SettingsError, SettingsManager, validate_settings


def _defaults() -> dict:
    return json.loads(json.dumps(DEFAULT_SETTINGS))


def test_first_load_writes_defaults(tmp_path: Path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    assert manager.settings == DEFAULT_SETTINGS
    assert json.loads((tmp_path / "settings.json").read_text(encoding="utf-8")) == DEFAULT_SETTINGS


def test_save_merges_and_coerces(tmp_path: Path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    manager.save({"analytics": {"max_records": "250"}, "ollama": {"timeout": "30"}})
    assert manager.settings["analytics"]["max_records"] == 250
    assert manager.settings["ollama"]["timeout"] == 30.0
    assert manager.settings["ollama"]["base_url"] == "http://localhost:11434"


def test_save_rejects_bad_values_without_writing(tmp_path: Path) -> None:
    manager = SettingsManager(tmp_path / "settings.json")
    manager.settings
    with pytest.raises(SettingsError):
        manager.save({"analytics": {"max_records": "many"}})
    assert manager.settings["analytics"]["max_records"] == 1000
    on_disk = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert on_disk["analytics"]["max_records"] == 1000


def test_unusable_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"analytics": {"max_records": "many"}}), encoding="utf-8")
    assert SettingsManager(path).settings == DEFAULT_SETTINGS
    path.write_text("{broken", encoding="utf-8")
    assert SettingsManager(path).settings == DEFAULT_SETTINGS


def test_reload_picks_up_hand_edits(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    manager = SettingsManager(path)
    manager.settings
    config = _defaults()
    config["ollama"]["default_model"] = "mistral"
    path.write_text(json.dumps(config), encoding="utf-8")
    assert manager.reload()["ollama"]["default_model"] == "mistral"


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("ollama", "base_url", ""),
        ("ollama", "health_timeout", float("inf")),
        ("analytics", "window_days", 0),
        ("analytics", "max_records", True),
        ("fine_tuning", "poll_interval", 0),
    ],
)
def test_validate_rejects_out_of_range(section: str, key: str, value) -> None:
    config = _defaults()
    config[section][key] = value
    with pytest.raises(SettingsError):
        validate_settings(config)
