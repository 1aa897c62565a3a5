# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Automatic door kernel.

A sensor-driven door controller: a simulated distance sensor detects people
near the door, the door opens automatically and closes again after a
configurable timeout, and every notable event is recorded as an alert and
announced to live subscribers.

Example usage:
    # Run the operator console
    python -m autodoor.console

    # Or use programmatically
    from autodoor import AutoDoorSystem, KernelConfig
    async with AutoDoorSystem(KernelConfig()) as system:
        await system.request("open")
"""

from .alerts import AlertEngine
from .broadcast import BroadcastEvent, BroadcastHub, Subscription
from .config import KernelConfig, SensorConfig
from .door import DoorController
from .errors import (
    AutoDoorError,
    ConfigError,
    InvariantViolation,
    NotFoundError,
    StoreError,
    TransientStoreError,
    ValidationError,
)
from .kernel import AutoDoorSystem
from .models import (
    Alert,
    AlertPage,
    AlertType,
    DoorLogEntry,
    DoorState,
    DoorStatus,
    LogAction,
    Priority,
    SensorReading,
    Setting,
    Trigger,
)
from .sensor import SensorEngine
from .settings import SETTING_SPECS, SettingsManager, SettingSpec
from .store import MemoryStore, SqlStore, Store
from .writer import PersistenceQueue

__all__ = [
    "Alert",
    "AlertEngine",
    "AlertPage",
    "AlertType",
    "AutoDoorError",
    "AutoDoorSystem",
    "BroadcastEvent",
    "BroadcastHub",
    "ConfigError",
    "DoorController",
    "DoorLogEntry",
    "DoorState",
    "DoorStatus",
    "InvariantViolation",
    "KernelConfig",
    "LogAction",
    "MemoryStore",
    "NotFoundError",
    "PersistenceQueue",
    "Priority",
    "SETTING_SPECS",
    "SensorConfig",
    "SensorEngine",
    "SensorReading",
    "Setting",
    "SettingSpec",
    "SettingsManager",
    "SqlStore",
    "Store",
    "StoreError",
    "Subscription",
    "TransientStoreError",
    "Trigger",
    "ValidationError",
]
