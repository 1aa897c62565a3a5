# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Settings management.

Settings live in the durable store as string-encoded rows. The manager
validates updates per key, keeps a read-mostly cache of typed values, and
notifies registered listeners so running components pick up changes
without a restart.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .const import (
    DEFAULT_AUTO_CLOSE_TIMER,
    DEFAULT_DETECTION_THRESHOLD,
    DEFAULT_SENSOR_UPDATE_INTERVAL,
    SETTING_ALERT_SOUND_ENABLED,
    SETTING_AUTO_CLOSE_TIMER,
    SETTING_DETECTION_THRESHOLD,
    SETTING_NOTIFICATIONS_ENABLED,
    SETTING_SENSOR_UPDATE_INTERVAL,
)
from .errors import ConfigError, NotFoundError, ValidationError
from .models import Setting, utcnow
from .store import Store, write_with_retry

logger = logging.getLogger(__name__)

SettingValue = Union[int, float, bool]
Listener = Callable[[SettingValue], Union[None, Awaitable[None]]]

# Standard bool values
_BOOL_TRUE = ("true", "on", "1", "yes")
_BOOL_FALSE = ("false", "off", "0", "no")


@dataclass(frozen=True)
class SettingSpec:
    """Type and range rules for one setting key."""

    key: str
    kind: str  # "int", "float", "bool"
    default: SettingValue
    description: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def parse(self, raw: Any) -> SettingValue:
        """Parse and validate a raw value (string, number or bool).

        Raises:
            ValidationError: if the value has the wrong type or is out of range.
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            raise ValidationError(f"Value is required for '{self.key}'")

        if self.kind == "bool":
            if isinstance(raw, bool):
                return raw
            v = str(raw).strip().lower()
            if v in _BOOL_TRUE:
                return True
            if v in _BOOL_FALSE:
                return False
            raise ValidationError(f"'{raw}' is not valid for '{self.key}'. Use true/false")

        if isinstance(raw, bool):
            raise ValidationError(f"'{self.key}' must be a number")
        try:
            number = float(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"'{raw}' is not a valid number for '{self.key}'") from None

        if self.kind == "int":
            if not number.is_integer():
                raise ValidationError(f"'{raw}' is not a valid integer for '{self.key}'")
            number = int(number)

        if self.min_value is not None and number < self.min_value:
            raise ValidationError(
                f"'{raw}' is below minimum for '{self.key}' ({self._fmt(self.min_value)})"
            )
        if self.max_value is not None and number > self.max_value:
            raise ValidationError(
                f"'{raw}' is above maximum for '{self.key}' ({self._fmt(self.max_value)})"
            )
        return number

    def encode(self, value: SettingValue) -> str:
        """Encode a parsed value for storage."""
        if self.kind == "bool":
            return "true" if value else "false"
        if self.kind == "float" and float(value).is_integer():
            return str(int(value))
        return str(value)

    def _fmt(self, limit: float) -> str:
        return str(int(limit)) if self.kind == "int" else str(limit)


SETTING_SPECS: dict[str, SettingSpec] = {
    spec.key: spec
    for spec in (
        SettingSpec(
            SETTING_DETECTION_THRESHOLD,
            "float",
            DEFAULT_DETECTION_THRESHOLD,
            "Detection range in cm",
            min_value=50,
            max_value=400,
        ),
        SettingSpec(
            SETTING_AUTO_CLOSE_TIMER,
            "int",
            DEFAULT_AUTO_CLOSE_TIMER,
            "Auto-close timer in seconds",
            min_value=10,
            max_value=120,
        ),
        SettingSpec(
            SETTING_SENSOR_UPDATE_INTERVAL,
            "int",
            DEFAULT_SENSOR_UPDATE_INTERVAL,
            "Sensor update interval in ms",
            min_value=100,
            max_value=5000,
        ),
        SettingSpec(SETTING_ALERT_SOUND_ENABLED, "bool", True, "Enable alert sounds"),
        SettingSpec(
            SETTING_NOTIFICATIONS_ENABLED, "bool", True, "Enable browser notifications"
        ),
    )
}


def get_spec(key: str) -> SettingSpec:
    """Return the spec for a known key.

    Raises:
        ValidationError: for unknown keys.
    """
    spec = SETTING_SPECS.get(key)
    if spec is None:
        known = ", ".join(sorted(SETTING_SPECS))
        raise ValidationError(f"Unknown setting '{key}'. Known settings: {known}")
    return spec


class SettingsManager:
    """Single source of truth for runtime settings."""

    def __init__(self, store: Store, defaults: Optional[dict[str, Any]] = None):
        self.store = store
        self._defaults = self._resolve_defaults(defaults or {})
        self._cache: dict[str, Setting] = {}
        self._listeners: dict[str, list[Listener]] = {}

    @staticmethod
    def _resolve_defaults(overrides: dict[str, Any]) -> dict[str, str]:
        defaults = {key: spec.encode(spec.default) for key, spec in SETTING_SPECS.items()}
        for key, raw in overrides.items():
            try:
                spec = get_spec(key)
                defaults[key] = spec.encode(spec.parse(raw))
            except ValidationError as e:
                raise ConfigError(f"Invalid default for setting: {e}") from e
        return defaults

    async def initialize(self):
        """Insert missing default rows and load the cache."""
        for key, value in self._defaults.items():
            row = Setting(key=key, value=value, description=SETTING_SPECS[key].description)
            if await self.store.add_setting_if_missing(row):
                logger.debug(f"Setting {key} initialized to {value}")
        await self.reload()

    async def reload(self):
        """Refresh the cache from the store."""
        rows = await self.store.list_settings()
        self._cache = {row.key: row for row in rows if row.key in SETTING_SPECS}
        for key, value in self._defaults.items():
            if key not in self._cache:
                self._cache[key] = Setting(
                    key=key, value=value, description=SETTING_SPECS[key].description
                )

    def add_listener(self, key: str, listener: Listener):
        """Call ``listener(new_value)`` after ``key`` is successfully updated."""
        get_spec(key)
        self._listeners.setdefault(key, []).append(listener)

    def value(self, key: str) -> SettingValue:
        """Typed value of a setting from the cache."""
        spec = get_spec(key)
        row = self._cache.get(key)
        if row is None:
            return spec.default
        try:
            return spec.parse(row.value)
        except ValidationError:
            logger.warning(f"Stored value {row.value!r} for {key} is invalid, using default")
            return spec.default

    async def get(self, key: str) -> Setting:
        """Return a setting row.

        Raises:
            NotFoundError: for unknown keys.
        """
        if key not in SETTING_SPECS:
            raise NotFoundError(f"Setting '{key}' not found")
        row = await self.store.get_setting(key)
        if row is None:
            row = self._cache[key]
        return row

    async def get_all(self) -> list[Setting]:
        """Return all settings ordered by key."""
        rows = await self.store.list_settings()
        return [row for row in rows if row.key in SETTING_SPECS]

    async def set(self, key: str, value: Any) -> Setting:
        """Validate, persist and apply a setting.

        Raises:
            ValidationError: for unknown keys or bad values.
            TransientStoreError: if the value could not be persisted; the
                running configuration is left unchanged.
        """
        spec = get_spec(key)
        parsed = spec.parse(value)
        row = Setting(
            key=key,
            value=spec.encode(parsed),
            description=spec.description,
            updated_at=utcnow(),
        )
        await write_with_retry(self.store.put_setting, row, description=f"setting {key}")
        self._cache[key] = row
        logger.info(f"Setting {key} = {row.value}")

        for listener in self._listeners.get(key, []):
            try:
                result = listener(parsed)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error applying setting {key}: {e}")
        return row
