# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Durable store adapters.

The kernel talks to storage only through the async ``Store`` interface.
Two implementations are provided:

- ``MemoryStore`` keeps rows in process memory. It can be taken offline to
  simulate an unavailable database.
- ``SqlStore`` persists the door log, alerts and settings through
  SQLAlchemy. Blocking database calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import NotFoundError, StoreError, TransientStoreError
from .models import (
    Alert,
    AlertType,
    DoorLogEntry,
    LogAction,
    Priority,
    Setting,
    Trigger,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def write_with_retry(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    description: str = "record",
) -> T:
    """Run a store write, retrying once before giving up.

    Raises:
        TransientStoreError: if both attempts fail.
    """
    try:
        return await operation(*args)
    except TransientStoreError:
        raise
    except StoreError as e:
        logger.warning(f"Store write failed for {description}, retrying: {e}")

    try:
        return await operation(*args)
    except StoreError as e:
        raise TransientStoreError(f"Failed to persist {description}: {e}") from e


class Store(ABC):
    """Async interface to the durable store."""

    async def initialize(self) -> None:
        """Prepare the backing storage (create tables, connect)."""

    async def close(self) -> None:
        """Release backing resources."""

    # Door log

    @abstractmethod
    async def add_door_log(self, entry: DoorLogEntry) -> DoorLogEntry:
        """Append a log entry and return it with its assigned id."""

    @abstractmethod
    async def list_door_logs(
        self, limit: Optional[int] = 50, since: Optional[datetime] = None
    ) -> list[DoorLogEntry]:
        """Return log entries, newest first."""

    # Alerts

    @abstractmethod
    async def add_alert(self, alert: Alert) -> None:
        """Persist a new alert with a caller-assigned id."""

    @abstractmethod
    async def get_alert(self, alert_id: int) -> Optional[Alert]:
        """Return the alert or None."""

    @abstractmethod
    async def acknowledge_alert(self, alert_id: int) -> bool:
        """Mark an alert acknowledged.

        Returns:
            True if the flag changed, False if it was already set.

        Raises:
            NotFoundError: if no alert has this id.
        """

    @abstractmethod
    async def list_alerts(
        self,
        alert_type: Optional[AlertType] = None,
        acknowledged: Optional[bool] = None,
        offset: int = 0,
        limit: Optional[int] = 20,
        since: Optional[datetime] = None,
    ) -> tuple[list[Alert], int]:
        """Return (alerts newest first, total matching count)."""

    @abstractmethod
    async def max_alert_id(self) -> int:
        """Highest alert id in the store, 0 if empty."""

    # Settings

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[Setting]:
        """Return the setting row or None."""

    @abstractmethod
    async def list_settings(self) -> list[Setting]:
        """Return all settings ordered by key."""

    @abstractmethod
    async def put_setting(self, setting: Setting) -> None:
        """Insert or replace a setting row."""

    @abstractmethod
    async def add_setting_if_missing(self, setting: Setting) -> bool:
        """Insert a setting only if its key is absent. Returns True if inserted."""


def _newest_first(items: list, key: Callable) -> list:
    return sorted(items, key=key, reverse=True)


class MemoryStore(Store):
    """In-process store used by tests and when no database is configured."""

    def __init__(self):
        self.door_logs: list[DoorLogEntry] = []
        self.alerts: dict[int, Alert] = {}
        self.settings: dict[str, Setting] = {}
        self.online = True
        self._next_log_id = 1

    def set_online(self, online: bool):
        """Simulate the store becoming unavailable (or available again)."""
        self.online = online
        logger.info(f"Memory store {'online' if online else 'offline'}")

    def _check(self):
        if not self.online:
            raise StoreError("store unavailable")

    async def add_door_log(self, entry: DoorLogEntry) -> DoorLogEntry:
        self._check()
        stored = DoorLogEntry(
            action=entry.action,
            trigger_type=entry.trigger_type,
            sensor_distance=entry.sensor_distance,
            timestamp=entry.timestamp,
            id=self._next_log_id,
        )
        self._next_log_id += 1
        self.door_logs.append(stored)
        return stored

    async def list_door_logs(self, limit=50, since=None):
        self._check()
        logs = [e for e in self.door_logs if since is None or e.timestamp >= since]
        logs = _newest_first(logs, key=lambda e: (e.timestamp, e.id))
        return logs if limit is None else logs[:limit]

    async def add_alert(self, alert: Alert) -> None:
        self._check()
        if alert.id in self.alerts:
            raise StoreError(f"duplicate alert id {alert.id}")
        self.alerts[alert.id] = Alert(**{**alert.__dict__, "persisted": True})

    async def get_alert(self, alert_id: int) -> Optional[Alert]:
        self._check()
        return self.alerts.get(alert_id)

    async def acknowledge_alert(self, alert_id: int) -> bool:
        self._check()
        alert = self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        if alert.acknowledged:
            return False
        alert.acknowledged = True
        return True

    async def list_alerts(
        self, alert_type=None, acknowledged=None, offset=0, limit=20, since=None
    ):
        self._check()
        matching = [
            a
            for a in self.alerts.values()
            if (alert_type is None or a.type is alert_type)
            and (acknowledged is None or a.acknowledged == acknowledged)
            and (since is None or a.timestamp >= since)
        ]
        matching = _newest_first(matching, key=lambda a: (a.timestamp, a.id))
        end = None if limit is None else offset + limit
        return matching[offset:end], len(matching)

    async def max_alert_id(self) -> int:
        self._check()
        return max(self.alerts, default=0)

    async def get_setting(self, key: str) -> Optional[Setting]:
        self._check()
        return self.settings.get(key)

    async def list_settings(self) -> list[Setting]:
        self._check()
        return [self.settings[k] for k in sorted(self.settings)]

    async def put_setting(self, setting: Setting) -> None:
        self._check()
        self.settings[setting.key] = setting

    async def add_setting_if_missing(self, setting: Setting) -> bool:
        self._check()
        if setting.key in self.settings:
            return False
        self.settings[setting.key] = setting
        return True


# SQL schema mirrors the three durable relations
metadata = MetaData()

door_logs_table = Table(
    "door_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action", String(16), nullable=False),
    Column("sensor_distance", Float, nullable=True),
    Column("trigger_type", String(16), nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
)

alerts_table = Table(
    "alerts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("type", String(32), nullable=False),
    Column("message", String, nullable=False),
    Column("priority", String(16), nullable=False, default="medium"),
    Column("acknowledged", Boolean, nullable=False, default=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
)

settings_table = Table(
    "settings",
    metadata,
    Column("key", String(64), primary_key=True),
    Column("value", String, nullable=False),
    Column("description", String, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite returns naive datetimes; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_log(row: Any) -> DoorLogEntry:
    return DoorLogEntry(
        id=row.id,
        action=LogAction(row.action),
        trigger_type=Trigger(row.trigger_type),
        sensor_distance=row.sensor_distance,
        timestamp=_aware(row.timestamp),
    )


def _row_to_alert(row: Any) -> Alert:
    return Alert(
        id=row.id,
        type=AlertType(row.type),
        message=row.message,
        priority=Priority(row.priority),
        acknowledged=bool(row.acknowledged),
        timestamp=_aware(row.timestamp),
        expires_at=_aware(row.expires_at),
    )


def _row_to_setting(row: Any) -> Setting:
    return Setting(
        key=row.key,
        value=row.value,
        description=row.description or "",
        updated_at=_aware(row.updated_at),
    )


class SqlStore(Store):
    """SQLAlchemy-backed store.

    Example:
        store = SqlStore("sqlite:///autodoor.db")
        await store.initialize()
    """

    def __init__(self, url: str = "sqlite:///autodoor.db", **engine_kwargs):
        self.url = url
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
            if url in ("sqlite://", "sqlite:///:memory:"):
                # Worker threads must share the single in-memory database
                engine_kwargs.setdefault("poolclass", StaticPool)
        self._engine_kwargs = engine_kwargs
        self.engine = None

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        if self.engine is None:
            raise StoreError("store not initialized")
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def initialize(self) -> None:
        try:
            self.engine = create_engine(self.url, **self._engine_kwargs)
            await asyncio.to_thread(metadata.create_all, self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot open database {self.url}: {e}") from e
        logger.info(f"Connected to database {self.engine.url!r}")

    async def close(self) -> None:
        if self.engine is not None:
            await asyncio.to_thread(self.engine.dispose)
            self.engine = None
            logger.info("Database connection closed")

    # Door log

    def _add_door_log(self, entry: DoorLogEntry) -> DoorLogEntry:
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(door_logs_table).values(
                    action=entry.action.value,
                    sensor_distance=entry.sensor_distance,
                    trigger_type=entry.trigger_type.value,
                    timestamp=entry.timestamp,
                )
            )
            new_id = result.inserted_primary_key[0]
        return DoorLogEntry(
            action=entry.action,
            trigger_type=entry.trigger_type,
            sensor_distance=entry.sensor_distance,
            timestamp=entry.timestamp,
            id=new_id,
        )

    async def add_door_log(self, entry: DoorLogEntry) -> DoorLogEntry:
        return await self._run(self._add_door_log, entry)

    def _list_door_logs(self, limit, since):
        query = select(door_logs_table).order_by(
            door_logs_table.c.timestamp.desc(), door_logs_table.c.id.desc()
        )
        if since is not None:
            query = query.where(door_logs_table.c.timestamp >= since)
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            return [_row_to_log(row) for row in conn.execute(query)]

    async def list_door_logs(self, limit=50, since=None):
        return await self._run(self._list_door_logs, limit, since)

    # Alerts

    def _add_alert(self, alert: Alert) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                insert(alerts_table).values(
                    id=alert.id,
                    type=alert.type.value,
                    message=alert.message,
                    priority=alert.priority.value,
                    acknowledged=alert.acknowledged,
                    timestamp=alert.timestamp,
                    expires_at=alert.expires_at,
                )
            )

    async def add_alert(self, alert: Alert) -> None:
        try:
            await self._run(self._add_alert, alert)
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise StoreError(f"duplicate alert id {alert.id}") from e
            raise

    def _get_alert(self, alert_id: int) -> Optional[Alert]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(alerts_table).where(alerts_table.c.id == alert_id)
            ).first()
        return _row_to_alert(row) if row is not None else None

    async def get_alert(self, alert_id: int) -> Optional[Alert]:
        return await self._run(self._get_alert, alert_id)

    def _acknowledge_alert(self, alert_id: int) -> Optional[bool]:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(alerts_table)
                .where(alerts_table.c.id == alert_id)
                .where(alerts_table.c.acknowledged.is_(False))
                .values(acknowledged=True)
            )
            if result.rowcount:
                return True
            exists = conn.execute(
                select(alerts_table.c.id).where(alerts_table.c.id == alert_id)
            ).first()
        return False if exists is not None else None

    async def acknowledge_alert(self, alert_id: int) -> bool:
        changed = await self._run(self._acknowledge_alert, alert_id)
        if changed is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        return changed

    def _list_alerts(self, alert_type, acknowledged, offset, limit, since):
        conditions = []
        if alert_type is not None:
            conditions.append(alerts_table.c.type == alert_type.value)
        if acknowledged is not None:
            conditions.append(alerts_table.c.acknowledged.is_(acknowledged))
        if since is not None:
            conditions.append(alerts_table.c.timestamp >= since)

        query = (
            select(alerts_table)
            .order_by(alerts_table.c.timestamp.desc(), alerts_table.c.id.desc())
            .offset(offset)
        )
        count_query = select(func.count()).select_from(alerts_table)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            alerts = [_row_to_alert(row) for row in conn.execute(query)]
            total = conn.execute(count_query).scalar_one()
        return alerts, total

    async def list_alerts(
        self, alert_type=None, acknowledged=None, offset=0, limit=20, since=None
    ):
        return await self._run(
            self._list_alerts, alert_type, acknowledged, offset, limit, since
        )

    def _max_alert_id(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.max(alerts_table.c.id))).scalar() or 0

    async def max_alert_id(self) -> int:
        return await self._run(self._max_alert_id)

    # Settings

    def _get_setting(self, key: str) -> Optional[Setting]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(settings_table).where(settings_table.c.key == key)
            ).first()
        return _row_to_setting(row) if row is not None else None

    async def get_setting(self, key: str) -> Optional[Setting]:
        return await self._run(self._get_setting, key)

    def _list_settings(self) -> list[Setting]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(settings_table).order_by(settings_table.c.key))
            return [_row_to_setting(row) for row in rows]

    async def list_settings(self) -> list[Setting]:
        return await self._run(self._list_settings)

    def _put_setting(self, setting: Setting) -> None:
        values = {
            "value": setting.value,
            "description": setting.description,
            "updated_at": setting.updated_at,
        }
        with self.engine.begin() as conn:
            result = conn.execute(
                update(settings_table)
                .where(settings_table.c.key == setting.key)
                .values(**values)
            )
            if not result.rowcount:
                conn.execute(insert(settings_table).values(key=setting.key, **values))

    async def put_setting(self, setting: Setting) -> None:
        await self._run(self._put_setting, setting)

    def _add_setting_if_missing(self, setting: Setting) -> bool:
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(settings_table.c.key).where(settings_table.c.key == setting.key)
            ).first()
            if exists is not None:
                return False
            conn.execute(
                insert(settings_table).values(
                    key=setting.key,
                    value=setting.value,
                    description=setting.description,
                    updated_at=setting.updated_at,
                )
            )
        return True

    async def add_setting_if_missing(self, setting: Setting) -> bool:
        return await self._run(self._add_setting_if_missing, setting)
