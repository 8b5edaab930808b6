import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("kolosal.settings")


DEFAULT_SETTINGS: Dict[str, Any] = {
    "ollama": {
        "base_url": "http://localhost:11434",
        "default_model": "phi",
        "timeout": 120,
        "health_timeout": 3,
    },
    "simulate_latency": True,
    "analytics": {
        "max_records": 1000,
        "window_days": 30,
    },
    "fine_tuning": {
        "start_after_seconds": 2,
        "complete_after_seconds": 30,
        "poll_interval": 1,
    },
}


def data_dir() -> Path:
    """
    Directory holding settings and logs. Override with KOLOSAL_DATA_DIR.
    """
    return Path(os.environ.get("KOLOSAL_DATA_DIR", "data"))


class SettingsManager:
    """
    Handles loading and persisting the editable configuration file.

    The file is stored as pretty-printed JSON so operators can edit it by hand.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._settings: Dict[str, Any] | None = None
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def settings(self) -> Dict[str, Any]:
        if self._settings is None:
            self._settings = self._load_from_disk()
        return self._settings

    def _load_from_disk(self) -> Dict[str, Any]:
        if not self.path.exists():
            self._write(DEFAULT_SETTINGS)
            return json.loads(json.dumps(DEFAULT_SETTINGS))
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            if not isinstance(data, dict):
                raise SettingsError("Settings file must hold a JSON object")
            # Merge with defaults to backfill new keys without overwriting manual edits.
            merged = json.loads(json.dumps(DEFAULT_SETTINGS))
            _deep_update(merged, data)
            return validate_settings(merged)
        except (ValueError, OSError) as exc:
            logger.error("Ignoring unusable settings file %s: %s", self.path, exc)
            return json.loads(json.dumps(DEFAULT_SETTINGS))

    def save(self, payload: Dict[str, Any]) -> None:
        config = json.loads(json.dumps(self.settings))
        _deep_update(config, payload)
        config = validate_settings(config)
        self._write(config)
        self._settings = config

    def reload(self) -> Dict[str, Any]:
        self._settings = self._load_from_disk()
        return self._settings

    def section(self, name: str) -> Dict[str, Any]:
        value = self.settings.get(name)
        return value if isinstance(value, dict) else dict(DEFAULT_SETTINGS.get(name, {}))

    def _write(self, data: Dict[str, Any]) -> None:
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, sort_keys=True)
            handle.write("\n")


def _deep_update(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    """
    Recursively update a mapping, preserving nested structures.
    """
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value


class SettingsError(ValueError):
    """Raised when a settings value has the wrong type or range."""


def _number(section: Dict[str, Any], key: str, cast: Any, minimum: float, label: str) -> None:
    value = section[key]
    if isinstance(value, bool):
        raise SettingsError(f"{label} must be a number")
    try:
        number = cast(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise SettingsError(f"{label} must be a number") from exc
    if not math.isfinite(number) or number < minimum:
        raise SettingsError(f"{label} must be at least {minimum:g}")
    section[key] = number


def validate_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check and coerce a merged configuration; raises SettingsError on bad values.
    """
    for name in ("ollama", "analytics", "fine_tuning"):
        if not isinstance(config.get(name), dict):
            raise SettingsError(f"'{name}' must be an object")
    ollama = config["ollama"]
    for key in ("base_url", "default_model"):
        if not isinstance(ollama.get(key), str) or not ollama[key].strip():
            raise SettingsError(f"ollama.{key} must be a non-empty string")
    _number(ollama, "timeout", float, 0.1, "ollama.timeout")
    _number(ollama, "health_timeout", float, 0.1, "ollama.health_timeout")
    if not isinstance(config.get("simulate_latency"), bool):
        raise SettingsError("simulate_latency must be true or false")
    analytics = config["analytics"]
    _number(analytics, "max_records", int, 1, "analytics.max_records")
    _number(analytics, "window_days", int, 1, "analytics.window_days")
    jobs = config["fine_tuning"]
    _number(jobs, "start_after_seconds", float, 0, "fine_tuning.start_after_seconds")
    _number(jobs, "complete_after_seconds", float, 0, "fine_tuning.complete_after_seconds")
    _number(jobs, "poll_interval", float, 0.1, "fine_tuning.poll_interval")
    return config
