# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for settings management (settings.py)."""
from __future__ import annotations

import pytest

from autodoor import (
    ConfigError,
    NotFoundError,
    Setting,
    SettingsManager,
    TransientStoreError,
    ValidationError,
)
from autodoor.settings import get_spec


@pytest.fixture
async def settings(store):
    """Create and initialize a settings manager."""
    manager = SettingsManager(store)
    await manager.initialize()
    return manager


# ============================================================================
# Validation
# ============================================================================

class TestSettingSpec:
    """Tests for per-key validation."""

    @pytest.mark.parametrize(
        "key,raw,expected",
        [
            ("detection_threshold", "150", 150.0),
            ("detection_threshold", "50", 50.0),
            ("auto_close_timer", "120", 120),
            ("sensor_update_interval", 100, 100),
            ("alert_sound_enabled", "off", False),
            ("notifications_enabled", "Yes", True),
        ],
    )
    def test_valid_values(self, key, raw, expected):
        assert get_spec(key).parse(raw) == expected

    @pytest.mark.parametrize(
        "key,raw",
        [
            ("detection_threshold", "49"),
            ("detection_threshold", "401"),
            ("auto_close_timer", "9"),
            ("auto_close_timer", "12.5"),
            ("sensor_update_interval", "fast"),
            ("sensor_update_interval", "5001"),
            ("alert_sound_enabled", "maybe"),
            ("notifications_enabled", ""),
        ],
    )
    def test_invalid_values(self, key, raw):
        with pytest.raises(ValidationError):
            get_spec(key).parse(raw)

    def test_unknown_key(self):
        with pytest.raises(ValidationError, match="Unknown setting"):
            get_spec("door_color")

    def test_encoding(self):
        assert get_spec("detection_threshold").encode(150.0) == "150"
        assert get_spec("detection_threshold").encode(150.5) == "150.5"
        assert get_spec("alert_sound_enabled").encode(False) == "false"


# ============================================================================
# Manager
# ============================================================================

class TestSettingsManager:
    """Tests for SettingsManager."""

    @pytest.mark.asyncio
    async def test_defaults_inserted(self, settings, store):
        rows = await settings.get_all()
        assert [r.key for r in rows] == [
            "alert_sound_enabled",
            "auto_close_timer",
            "detection_threshold",
            "notifications_enabled",
            "sensor_update_interval",
        ]
        assert store.settings["auto_close_timer"].value == "30"
        assert settings.value("detection_threshold") == 200

    @pytest.mark.asyncio
    async def test_existing_rows_are_kept(self, store):
        await store.put_setting(Setting(key="auto_close_timer", value="60"))
        manager = SettingsManager(store)
        await manager.initialize()
        assert manager.value("auto_close_timer") == 60

    @pytest.mark.asyncio
    async def test_default_overrides(self, store):
        manager = SettingsManager(store, defaults={"auto_close_timer": 45})
        await manager.initialize()
        assert (await manager.get("auto_close_timer")).value == "45"

    def test_invalid_default_override(self, store):
        with pytest.raises(ConfigError):
            SettingsManager(store, defaults={"auto_close_timer": 500})

    @pytest.mark.asyncio
    async def test_set_persists_and_normalizes(self, settings, store):
        row = await settings.set("alert_sound_enabled", "OFF")
        assert row.value == "false"
        assert store.settings["alert_sound_enabled"].value == "false"
        assert settings.value("alert_sound_enabled") is False

    @pytest.mark.asyncio
    async def test_set_unknown_key(self, settings, store):
        with pytest.raises(ValidationError):
            await settings.set("door_color", "red")
        assert "door_color" not in store.settings

    @pytest.mark.asyncio
    async def test_get_unknown_key(self, settings):
        with pytest.raises(NotFoundError):
            await settings.get("door_color")

    @pytest.mark.asyncio
    async def test_listeners_called_after_persist(self, settings):
        calls = []

        async def async_listener(value):
            calls.append(("async", value))

        settings.add_listener("sensor_update_interval", lambda v: calls.append(("sync", v)))
        settings.add_listener("sensor_update_interval", async_listener)

        await settings.set("sensor_update_interval", "250")
        assert calls == [("sync", 250), ("async", 250)]

    @pytest.mark.asyncio
    async def test_invalid_value_does_not_notify(self, settings):
        calls = []
        settings.add_listener("detection_threshold", calls.append)
        with pytest.raises(ValidationError):
            await settings.set("detection_threshold", "1000")
        assert calls == []
        assert settings.value("detection_threshold") == 200

    @pytest.mark.asyncio
    async def test_store_failure_leaves_runtime_unchanged(self, settings, store):
        calls = []
        settings.add_listener("auto_close_timer", calls.append)
        store.set_online(False)

        with pytest.raises(TransientStoreError):
            await settings.set("auto_close_timer", "60")

        assert calls == []
        assert settings.value("auto_close_timer") == 30

    @pytest.mark.asyncio
    async def test_listener_error_is_logged(self, settings, caplog):
        def broken(value):
            raise RuntimeError("boom")

        settings.add_listener("detection_threshold", broken)
        row = await settings.set("detection_threshold", "120")
        assert row.value == "120"
        assert "boom" in caplog.text
