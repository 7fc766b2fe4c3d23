"""
Persisted configuration for the PiP engine.

Settings live in one versioned JSON record under ~/.pip_video_browser.
The record also carries the last known PiP surface size and the browser
window state, each under its own key.
"""
import json
import logging
import math
import os
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import FrozenSet, Optional

from pip_capabilities import PersistenceFailure

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1
DEFAULT_CONFIG_DIR = Path.home() / ".pip_video_browser"

VERTICAL_POSITIONS = ("top", "mid", "bot")
HORIZONTAL_POSITIONS = ("left", "center", "right")
BUTTON_POSITIONS = tuple(
    f"{y}-{x}" for y in VERTICAL_POSITIONS for x in HORIZONTAL_POSITIONS
)

DEFAULT_BLACKLIST = ("tiktok.com", "youtube.com/shorts")


def parse_blacklist(text: str) -> FrozenSet[str]:
    """Split newline-separated entries, trimming and dropping blanks"""
    return frozenset(line.strip() for line in (text or "").splitlines() if line.strip())


@dataclass(frozen=True)
class PipSettings:
    auto_pip_enabled: bool = False
    auto_trigger_delay_ms: int = 1000
    blacklist: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_BLACKLIST))
    button_position: str = "top-right"
    min_duration_seconds: float = 10.0
    min_width: int = 200
    min_height: int = 150
    seek_interval_seconds: int = 10
    idle_opacity: float = 0.7
    shortcut: str = "Alt+P"
    hide_button_while_active: bool = False

    def blacklist_text(self) -> str:
        return "\n".join(sorted(self.blacklist))


@dataclass(frozen=True)
class PipSize:
    width: int
    height: int


def _read_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"not a boolean: {value!r}")


def _read_int(low, high=None):
    def read(value):
        if isinstance(value, bool):
            raise ValueError(f"not an integer: {value!r}")
        number = int(float(value))
        number = max(low, number)
        return min(high, number) if high is not None else number
    return read


def _read_float(low, high=None):
    def read(value):
        if isinstance(value, bool):
            raise ValueError(f"not a number: {value!r}")
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"not a finite number: {value!r}")
        number = max(low, number)
        return min(high, number) if high is not None else number
    return read


def _read_position(value):
    if value not in BUTTON_POSITIONS:
        raise ValueError(f"unknown button position: {value!r}")
    return value


def _read_shortcut(value):
    if not isinstance(value, str):
        raise ValueError(f"not a shortcut string: {value!r}")
    return value.strip()


def _read_blacklist(value):
    if isinstance(value, (list, tuple)):
        value = "\n".join(str(v) for v in value)
    if not isinstance(value, str):
        raise ValueError(f"not a blacklist: {value!r}")
    return parse_blacklist(value)


# attribute -> (persisted key, parser, serializer)
SETTINGS_SCHEMA = {
    "auto_pip_enabled": ("autoPip", _read_bool, bool),
    "auto_trigger_delay_ms": ("autoDelay", _read_int(0), int),
    "blacklist": ("blacklist", _read_blacklist, lambda v: "\n".join(sorted(v))),
    "button_position": ("position", _read_position, str),
    "min_duration_seconds": ("minduration", _read_float(0), float),
    "min_width": ("minwidth", _read_int(1), int),
    "min_height": ("minheight", _read_int(1), int),
    "seek_interval_seconds": ("seek", _read_int(1), int),
    "idle_opacity": ("opacity", _read_float(0.0, 1.0), float),
    "shortcut": ("shortcut", _read_shortcut, str),
    "hide_button_while_active": ("hidebuttonwhenactive", _read_bool, bool),
}


def settings_to_record(settings: PipSettings) -> dict:
    record = {}
    for f in fields(PipSettings):
        key, _, dump = SETTINGS_SCHEMA[f.name]
        record[key] = dump(getattr(settings, f.name))
    return record


def settings_from_record(record: Optional[dict]) -> PipSettings:
    """Build a snapshot from a persisted record, defaulting each bad or absent field"""
    defaults = PipSettings()
    if not isinstance(record, dict):
        return defaults
    values = {}
    for f in fields(PipSettings):
        key, parse, _ = SETTINGS_SCHEMA[f.name]
        if key not in record:
            continue
        try:
            values[f.name] = parse(record[key])
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("Ignoring persisted setting %s: %s", key, e)
    return replace(defaults, **values)


class SettingsStore:
    """JSON-backed store for settings, last PiP size and window state"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else DEFAULT_CONFIG_DIR / "config.json"

    def _read(self) -> dict:
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"cannot read {self.config_file}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceFailure(f"{self.config_file} does not hold a record")
        version = data.get("version")
        if version != CONFIG_VERSION:
            logger.warning("Config version %r differs from %d, reading best-effort", version, CONFIG_VERSION)
        return data

    def _read_or_empty(self) -> dict:
        try:
            return self._read()
        except PersistenceFailure as e:
            logger.warning("%s, using defaults", e)
            return {}

    def _update(self, key: str, value):
        data = self._read_or_empty()
        data["version"] = CONFIG_VERSION
        data[key] = value
        self._write(data)

    def _write(self, data: dict):
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.config_file.parent, prefix=".config-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.config_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceFailure(f"cannot write {self.config_file}: {e}") from e

    def load(self) -> PipSettings:
        """Load settings with per-field defaults; never raises"""
        return settings_from_record(self._read_or_empty().get("settings"))

    def save(self, settings: PipSettings):
        self._update("settings", settings_to_record(settings))
        logger.info("Settings saved to %s", self.config_file)

    def load_pip_size(self) -> Optional[PipSize]:
        size = self._read_or_empty().get("pipSize")
        if not isinstance(size, dict):
            return None
        try:
            width, height = int(size["width"]), int(size["height"])
        except (KeyError, TypeError, ValueError, OverflowError):
            return None
        if width <= 0 or height <= 0:
            return None
        return PipSize(width, height)

    def save_pip_size(self, width: int, height: int):
        self._update("pipSize", {"width": int(width), "height": int(height)})

    def load_window_state(self) -> dict:
        state = self._read_or_empty().get("window")
        return state if isinstance(state, dict) else {}

    def save_window_state(self, state: dict):
        self._update("window", dict(state))
