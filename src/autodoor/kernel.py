# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AutoDoorSystem: the context object wiring every kernel component.

There are no module-level singletons. Each ``AutoDoorSystem`` owns its own
store, hub, persistence writer, alert engine, settings, door controller and
sensor, so independent systems can run side by side (tests do this).

Example:
    system = AutoDoorSystem(KernelConfig(sensor_enabled=False))
    await system.start()
    await system.request("open")
    print(system.status())
    await system.stop()
"""
from __future__ import annotations

import logging
import random
import time
from datetime import timedelta
from typing import Any, Callable, Optional

from .alerts import AlertEngine
from .broadcast import BroadcastHub
from .config import KernelConfig
from .const import (
    ACTION_CLOSE,
    ACTION_OPEN,
    DEFAULT_ALERT_PAGE_SIZE,
    DEFAULT_LOG_LIMIT,
    SETTING_AUTO_CLOSE_TIMER,
    SETTING_DETECTION_THRESHOLD,
    SETTING_SENSOR_UPDATE_INTERVAL,
    STATS_WINDOW_HOURS,
)
from .door import DoorController
from .errors import ValidationError
from .models import (
    AlertPage,
    AlertType,
    DoorLogEntry,
    DoorState,
    LogAction,
    Priority,
    SensorReading,
    Setting,
    Trigger,
    utcnow,
)
from .sensor import SensorEngine
from .settings import SettingsManager
from .store import MemoryStore, SqlStore, Store
from .writer import PersistenceQueue

logger = logging.getLogger(__name__)


class AutoDoorSystem:
    """One automatic door with its sensor, alerts and settings."""

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        store: Optional[Store] = None,
        hub: Optional[BroadcastHub] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or KernelConfig()
        self.config.validate()

        if store is None:
            store = SqlStore(self.config.database) if self.config.database else MemoryStore()
        self.store = store
        self.hub = hub or BroadcastHub(audit_size=self.config.audit_log_size)
        self.writer = PersistenceQueue(lag_threshold=self.config.persistence_lag_threshold)
        self.alerts = AlertEngine(self.store, self.hub)
        self.settings = SettingsManager(self.store, defaults=self.config.settings)
        self.door = DoorController(self.store, self.alerts, self.hub, self.writer)
        self.sensor = SensorEngine(
            self.door, self.alerts, self.hub, config=self.config.sensor, rng=rng, clock=clock
        )

        self.settings.add_listener(SETTING_DETECTION_THRESHOLD, self.sensor.set_threshold)
        self.settings.add_listener(SETTING_SENSOR_UPDATE_INTERVAL, self.sensor.set_interval)
        self.settings.add_listener(
            SETTING_AUTO_CLOSE_TIMER, self.door.reconfigure_auto_close_duration
        )

        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self):
        """Open the store, load settings and start background tasks."""
        if self.running:
            return

        await self.store.initialize()
        await self.settings.initialize()
        await self.alerts.start()

        self.sensor.set_threshold(self.settings.value(SETTING_DETECTION_THRESHOLD))
        await self.sensor.set_interval(self.settings.value(SETTING_SENSOR_UPDATE_INTERVAL))
        self.door.reconfigure_auto_close_duration(self.settings.value(SETTING_AUTO_CLOSE_TIMER))

        self.writer.start()
        if self.config.sensor_enabled:
            await self.sensor.start()

        self._started_at = time.monotonic()
        logger.info("Automatic door system started")

    async def stop(self):
        """Stop background tasks, flush pending writes and close the store."""
        if not self.running:
            return

        await self.sensor.stop()
        await self.door.shutdown()
        await self.writer.stop(drain=True)
        self.sensor.close()
        self.hub.close()
        await self.store.close()

        self._started_at = None
        logger.info("Automatic door system stopped")

    async def __aenter__(self) -> "AutoDoorSystem":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # =========================================================================
    # Door
    # =========================================================================

    async def request(self, action: str) -> DoorState:
        """Handle an external door request ("open" or "close").

        Raises:
            ValidationError: for any other action.
        """
        action = action.strip().lower() if isinstance(action, str) else action
        if action == ACTION_OPEN:
            return await self.door.open(Trigger.MANUAL)
        if action == ACTION_CLOSE:
            return await self.door.close(Trigger.MANUAL)
        raise ValidationError("Invalid action. Must be 'open' or 'close'")

    async def open(self) -> DoorState:
        return await self.door.open(Trigger.MANUAL)

    async def close(self) -> DoorState:
        return await self.door.close(Trigger.MANUAL)

    def status(self) -> dict[str, Any]:
        """Current door status including the configured auto-close duration."""
        status = self.door.status().to_dict()
        status["autoCloseTimer"] = self.door.auto_close_seconds
        return status

    async def door_logs(self, limit: int = DEFAULT_LOG_LIMIT) -> list[DoorLogEntry]:
        """Most recent door operations, newest first."""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        return await self.store.list_door_logs(limit=limit)

    # =========================================================================
    # Alerts
    # =========================================================================

    async def acknowledge_alert(self, alert_id: int) -> bool:
        return await self.alerts.acknowledge(alert_id)

    async def list_alerts(
        self,
        alert_type: Optional[AlertType] = None,
        acknowledged: Optional[bool] = None,
        page: int = 1,
        limit: int = DEFAULT_ALERT_PAGE_SIZE,
    ) -> AlertPage:
        return await self.alerts.list(
            alert_type=alert_type, acknowledged=acknowledged, page=page, limit=limit
        )

    # =========================================================================
    # Settings
    # =========================================================================

    async def get_setting(self, key: str) -> Setting:
        return await self.settings.get(key)

    async def get_settings(self) -> list[Setting]:
        return await self.settings.get_all()

    async def update_setting(self, key: str, value: Any) -> Setting:
        """Validate, persist and apply a setting change."""
        return await self.settings.set(key, value)

    # =========================================================================
    # Sensor
    # =========================================================================

    async def start_sensor(self):
        await self.sensor.start()

    async def stop_sensor(self):
        await self.sensor.stop()

    def latest_reading(self) -> Optional[SensorReading]:
        return self.sensor.last_reading

    # =========================================================================
    # Reporting
    # =========================================================================

    def health(self) -> dict[str, Any]:
        """Health of the running system."""
        persistence = self.writer.health()
        return {
            "healthy": self.running and persistence["healthy"],
            "running": self.running,
            "sensorActive": self.sensor.running,
            "subscribers": self.hub.subscriber_count,
            "persistence": persistence,
        }

    async def stats(self) -> dict[str, Any]:
        """Door and alert statistics over the last 24 hours."""
        since = utcnow() - timedelta(hours=STATS_WINDOW_HOURS)

        logs = await self.store.list_door_logs(limit=None, since=since)
        opens = sum(1 for entry in logs if entry.action is LogAction.OPENED)
        automatic = sum(1 for entry in logs if entry.trigger_type is not Trigger.MANUAL)

        alerts, total_alerts = await self.store.list_alerts(limit=None, since=since)
        unacknowledged = sum(1 for alert in alerts if not alert.acknowledged)
        high = sum(1 for alert in alerts if alert.priority is Priority.HIGH)

        uptime = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        return {
            "door": {
                "totalOperations": len(logs),
                "opens": opens,
                "closes": len(logs) - opens,
                "automatic": automatic,
                "lastActivity": logs[0].timestamp.isoformat() if logs else None,
            },
            "alerts": {
                "total": total_alerts,
                "unacknowledged": unacknowledged,
                "highPriority": high,
            },
            "system": {
                "uptime": round(uptime, 1),
                "sensorActive": self.sensor.running,
                "currentThreshold": self.sensor.threshold,
                "persistence": self.writer.health(),
            },
        }
