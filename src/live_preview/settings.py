"""User settings for the preview server."""

import dataclasses
import enum
import json
import logging
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .constants import DEFAULT_HOST, DEFAULT_PORT
from .errors import SettingsError
from .events import EventEmitter

logger = logging.getLogger(__name__)


class AutoRefreshMode(str, enum.Enum):
    """When connected browsers are told to reload."""

    ON_ANY_CHANGE = "on-any-change"
    ON_SAVE = "on-save"
    NEVER = "never"


@dataclass(frozen=True)
class Settings:
    """Snapshot of the current configuration."""

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    server_root: str = ""
    auto_refresh_mode: AutoRefreshMode = AutoRefreshMode.ON_ANY_CHANGE
    show_server_status_notifications: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["auto_refresh_mode"] = self.auto_refresh_mode.value
        return data


SETTING_NAMES: FrozenSet[str] = frozenset(f.name for f in dataclasses.fields(Settings))


def _coerce(key: str, value: Any) -> Any:
    """Validate `value` for setting `key`, returning the stored form."""
    if key not in SETTING_NAMES:
        raise SettingsError(f"Unknown setting: {key}")

    if key == "auto_refresh_mode":
        try:
            return AutoRefreshMode(value)
        except ValueError:
            choices = ", ".join(m.value for m in AutoRefreshMode)
            raise SettingsError(
                f"Invalid auto_refresh_mode {value!r} (expected one of: {choices})"
            ) from None

    if key == "port":
        if isinstance(value, bool) or not isinstance(value, int):
            raise SettingsError(f"port must be an integer, got {value!r}")
        if not 0 < value < 65536:
            raise SettingsError(f"port out of range: {value}")
        return value

    if key == "show_server_status_notifications":
        if not isinstance(value, bool):
            raise SettingsError(f"{key} must be a boolean, got {value!r}")
        return value

    if not isinstance(value, str):
        raise SettingsError(f"{key} must be a string, got {value!r}")
    return value


class ConfigurationChangeEvent:
    """Describes which settings changed in one update."""

    def __init__(self, keys: Iterable[str]):
        self.keys = frozenset(keys)

    def affects_configuration(self, key: str) -> bool:
        return key in self.keys

    def __repr__(self):
        return f"ConfigurationChangeEvent({sorted(self.keys)})"


class SettingsStore:
    """Holds the live `Settings` and persists changes to an optional JSON file.

    Run-time overrides (e.g. command line flags) are layered on top of the
    persisted values and are never saved.
    """

    def __init__(
        self, settings: Optional[Settings] = None, path: Optional[pathlib.Path] = None
    ):
        self._settings = settings or Settings()
        self.path = path
        self._overrides: Dict[str, Any] = {}
        self.on_did_change_configuration: EventEmitter[ConfigurationChangeEvent] = (
            EventEmitter("did_change_configuration")
        )

    @classmethod
    def load(cls, path: pathlib.Path) -> "SettingsStore":
        """Read settings from `path`; a missing file yields the defaults."""
        if not path.exists():
            return cls(path=path)

        try:
            raw = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise SettingsError(f"Invalid settings file {path}: {e}") from e
        if not isinstance(raw, dict):
            raise SettingsError(f"Settings file {path} must contain a JSON object")

        values = {}
        for key, value in raw.items():
            if key not in SETTING_NAMES:
                logger.warning(f"Ignoring unknown setting {key!r} in {path}")
                continue
            values[key] = _coerce(key, value)
        return cls(Settings(**values), path=path)

    def override(self, key: str, value: Any) -> None:
        """Set a value for this run only; it is never written to the file."""
        self._overrides[key] = _coerce(key, value)

    def get_config(self) -> Settings:
        if not self._overrides:
            return self._settings
        return dataclasses.replace(self._settings, **self._overrides)

    def update(self, key: str, value: Any) -> None:
        """Change one setting, persist it, and notify listeners.

        An update replaces any run-time override of the same key.
        """
        value = _coerce(key, value)
        before = getattr(self.get_config(), key)
        self._overrides.pop(key, None)
        if getattr(self._settings, key) != value:
            self._settings = dataclasses.replace(self._settings, **{key: value})
            self.save()
        if before == value:
            return

        logger.debug(f"Setting {key} updated to {value!r}")
        self.on_did_change_configuration.fire(ConfigurationChangeEvent([key]))

    def save(self) -> None:
        """Write the persisted settings to the settings file, if there is one."""
        if self.path is None:
            return
        self.path.write_text(json.dumps(self._settings.to_dict(), indent=2))
