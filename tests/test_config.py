# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for configuration loading (config.py)."""
from __future__ import annotations

import textwrap

import pytest

from autodoor import ConfigError, KernelConfig, SensorConfig


class TestKernelConfig:
    """Tests for KernelConfig."""

    def test_defaults(self):
        config = KernelConfig()
        config.validate()
        assert config.database is None
        assert config.sensor_enabled is True
        assert config.sensor.near_field_cutoff == 100
        assert config.sensor.detection_cooldown == 5
        assert config.sensor.min_distance == 50
        assert config.sensor.max_distance == 400

    def test_from_yaml(self):
        config = KernelConfig.from_yaml(textwrap.dedent(
            """
            database: sqlite:///door.db
            sensor_enabled: false
            sensor:
              detection_cooldown: 2
              near_probability: 0.25
            settings:
              auto_close_timer: 45
            """
        ))
        assert config.database == "sqlite:///door.db"
        assert config.sensor_enabled is False
        assert config.sensor.detection_cooldown == 2.0
        assert config.sensor.near_probability == 0.25
        assert config.settings == {"auto_close_timer": 45}

    def test_empty_yaml(self):
        assert KernelConfig.from_yaml("") == KernelConfig()

    def test_load_file(self, tmp_path):
        path = tmp_path / "autodoor.yaml"
        path.write_text("audit_log_size: 10\n")
        assert KernelConfig.load(path).audit_log_size == 10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            KernelConfig.load(tmp_path / "missing.yaml")

    @pytest.mark.parametrize(
        "text,message",
        [
            ("colour: red", "Unknown configuration key: colour"),
            ("sensor:\n  range: 3", "Unknown configuration key: sensor.range"),
            ("sensor_enabled: 3", "true or false"),
            ("audit_log_size: many", "integer"),
            ("sensor:\n  max_step: fast", "number"),
            ("database: 5", "string"),
            ("settings: [1, 2]", "mapping"),
            ("- a\n- b", "mapping"),
            ("key: [unclosed", "Invalid YAML"),
        ],
    )
    def test_invalid(self, text, message):
        with pytest.raises(ConfigError, match=message):
            KernelConfig.from_yaml(text)


class TestSensorConfig:
    """Tests for SensorConfig validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_distance": 500},
            {"initial_distance": 10},
            {"near_probability": 1.5},
            {"near_min_distance": 130},
            {"max_step": -1},
            {"detection_cooldown": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            SensorConfig(**kwargs).validate()
