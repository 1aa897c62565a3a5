# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Data model for the automatic door kernel.

Enums carry the string values used on the wire and in the durable store,
so ``DoorStatus("open")`` and ``status.value`` round-trip with payloads
and rows directly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class DoorStatus(Enum):
    """Door position."""

    OPEN = "open"
    CLOSED = "closed"


class Trigger(Enum):
    """Cause of a door transition."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"
    TIMEOUT = "timeout"


class LogAction(Enum):
    """Action recorded in the door operation log."""

    OPENED = "opened"
    CLOSED = "closed"


class AlertType(Enum):
    """Kind of alert."""

    DOOR_OPERATION = "door_operation"
    HUMAN_DETECTED = "human_detected"
    SYSTEM_ERROR = "system_error"
    MAINTENANCE = "maintenance"


class Priority(Enum):
    """Alert priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DoorState:
    """Snapshot of the door.

    ``auto_close_deadline`` is set if and only if the door is open.
    """

    status: DoorStatus = DoorStatus.CLOSED
    last_updated: datetime = field(default_factory=utcnow)
    trigger: Optional[Trigger] = None
    auto_close_deadline: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status is DoorStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status is DoorStatus.CLOSED

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``door:status-update`` payload format."""
        return {
            "status": self.status.value,
            "timestamp": _iso(self.last_updated),
            "trigger": self.trigger.value if self.trigger else None,
            "autoCloseDeadline": _iso(self.auto_close_deadline),
        }


@dataclass(frozen=True)
class SensorReading:
    """A single distance sample.

    ``threshold`` is the detection threshold in effect when the reading
    was generated, copied so later changes do not alter past readings.
    """

    distance: float
    threshold: float
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``sensor:distance-update`` payload format."""
        return {
            "distance": round(self.distance, 1),
            "timestamp": _iso(self.timestamp),
            "threshold": self.threshold,
        }


@dataclass
class Alert:
    """A durable alert. Only ``acknowledged`` changes after creation."""

    id: int
    type: AlertType
    message: str
    priority: Priority = Priority.MEDIUM
    acknowledged: bool = False
    timestamp: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    # False when the durable store could not accept the alert
    persisted: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to the ``alert:new`` payload format."""
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "priority": self.priority.value,
            "timestamp": _iso(self.timestamp),
            "acknowledged": self.acknowledged,
            "expiresAt": _iso(self.expires_at),
            "persisted": self.persisted,
        }


@dataclass(frozen=True)
class DoorLogEntry:
    """An immutable door operation log row."""

    action: LogAction
    trigger_type: Trigger
    sensor_distance: Optional[float] = None
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.value,
            "sensorDistance": self.sensor_distance,
            "triggerType": self.trigger_type.value,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class Setting:
    """A named, string-encoded setting row."""

    key: str
    value: str
    description: str = ""
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class AlertPage:
    """One page of an alert listing."""

    alerts: list[Alert]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        """Number of pages at the current page size."""
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
