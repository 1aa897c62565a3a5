# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Kernel configuration.

Configuration can be built in code or loaded from a YAML file:

    sensor:
      detection_cooldown: 5
      near_field_cutoff: 100
    database: sqlite:///autodoor.db
    settings:
      auto_close_timer: 45
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .const import (
    DEFAULT_AUDIT_LOG_SIZE,
    DEFAULT_INITIAL_DISTANCE,
    DEFAULT_MAX_DISTANCE,
    DEFAULT_MAX_STEP,
    DEFAULT_MIN_DISTANCE,
    DEFAULT_NEAR_MAX_DISTANCE,
    DEFAULT_NEAR_MIN_DISTANCE,
    DEFAULT_NEAR_PROBABILITY,
    DEFAULT_PERSISTENCE_LAG_THRESHOLD,
    DETECTION_COOLDOWN,
    NEAR_FIELD_CUTOFF,
)
from .errors import ConfigError


@dataclass
class SensorConfig:
    """Tunables for the simulated distance sensor (distances in cm, times in seconds)."""

    # Bounds of the random walk
    min_distance: float = DEFAULT_MIN_DISTANCE
    max_distance: float = DEFAULT_MAX_DISTANCE
    initial_distance: float = DEFAULT_INITIAL_DISTANCE

    # Largest change between two consecutive far readings
    max_step: float = DEFAULT_MAX_STEP

    # Chance per tick that someone steps close to the door
    near_probability: float = DEFAULT_NEAR_PROBABILITY
    near_min_distance: float = DEFAULT_NEAR_MIN_DISTANCE
    near_max_distance: float = DEFAULT_NEAR_MAX_DISTANCE

    # Readings must also be below this to count as a person
    near_field_cutoff: float = NEAR_FIELD_CUTOFF

    # Minimum time between two accepted detections
    detection_cooldown: float = DETECTION_COOLDOWN

    def validate(self) -> None:
        """Raise ConfigError if the values are inconsistent."""
        if self.min_distance < 0 or self.min_distance >= self.max_distance:
            raise ConfigError(
                f"sensor distance bounds must satisfy 0 <= min < max "
                f"(got {self.min_distance}..{self.max_distance})"
            )
        if not self.min_distance <= self.initial_distance <= self.max_distance:
            raise ConfigError("sensor.initial_distance must lie within the distance bounds")
        if not 0.0 <= self.near_probability <= 1.0:
            raise ConfigError("sensor.near_probability must be between 0 and 1")
        if self.near_min_distance < 0 or self.near_min_distance > self.near_max_distance:
            raise ConfigError("sensor near distance range is invalid")
        if self.max_step < 0:
            raise ConfigError("sensor.max_step must not be negative")
        if self.detection_cooldown < 0:
            raise ConfigError("sensor.detection_cooldown must not be negative")


@dataclass
class KernelConfig:
    """Top-level configuration for an AutoDoorSystem."""

    sensor: SensorConfig = field(default_factory=SensorConfig)

    # SQLAlchemy URL for the durable store; None keeps everything in memory
    database: Optional[str] = None

    # Start the sensor ticker as part of AutoDoorSystem.start()
    sensor_enabled: bool = True

    audit_log_size: int = DEFAULT_AUDIT_LOG_SIZE
    persistence_lag_threshold: int = DEFAULT_PERSISTENCE_LAG_THRESHOLD

    # Overrides for setting defaults, applied only to rows that do not exist yet
    settings: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        self.sensor.validate()
        if self.audit_log_size < 0:
            raise ConfigError("audit_log_size must not be negative")
        if self.persistence_lag_threshold < 1:
            raise ConfigError("persistence_lag_threshold must be at least 1")

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "KernelConfig":
        """Create from a parsed mapping, rejecting unknown keys."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        data = dict(data)
        sensor_data = data.pop("sensor", None) or {}
        if not isinstance(sensor_data, dict):
            raise ConfigError("'sensor' must be a mapping")

        sensor = SensorConfig(**_coerce_fields(SensorConfig, sensor_data, "sensor."))
        kwargs = _coerce_fields(cls, data, "")
        settings = kwargs.get("settings", {})
        if not isinstance(settings, dict):
            raise ConfigError("'settings' must be a mapping")

        config = cls(sensor=sensor, **kwargs)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, text: str) -> "KernelConfig":
        """Parse YAML text."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML configuration: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "KernelConfig":
        """Load a YAML configuration file."""
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
        return cls.from_yaml(text)


_NUMERIC = (int, float)


def _coerce_fields(target: type, data: dict[str, Any], prefix: str) -> dict[str, Any]:
    """Check keys/types in ``data`` against the dataclass ``target``."""
    known = {f.name: f for f in fields(target) if f.name != "sensor"}
    result = {}
    for key, value in data.items():
        if key not in known:
            raise ConfigError(f"Unknown configuration key: {prefix}{key}")
        default = known[key].default
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"{prefix}{key} must be true or false")
        elif isinstance(default, float):
            if isinstance(value, bool) or not isinstance(value, _NUMERIC):
                raise ConfigError(f"{prefix}{key} must be a number")
            value = float(value)
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{prefix}{key} must be an integer")
        elif key == "database" and value is not None and not isinstance(value, str):
            raise ConfigError(f"{prefix}{key} must be a string")
        result[key] = value
    return result
