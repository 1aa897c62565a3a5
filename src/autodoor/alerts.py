# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Alert engine: durable records of notable events and their acknowledgement."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from .broadcast import BroadcastHub
from .const import DEFAULT_ALERT_PAGE_SIZE, EVENT_ALERT_ACKNOWLEDGED, EVENT_ALERT_NEW
from .errors import TransientStoreError, ValidationError
from .models import Alert, AlertPage, AlertType, Priority, utcnow
from .store import Store, write_with_retry

logger = logging.getLogger(__name__)


class AlertEngine:
    """Creates alerts, persists them and announces them on the hub.

    Ids are assigned in memory, so an alert has an id even if the store is
    down. Such alerts are still published, with ``persisted`` set to False.
    """

    def __init__(self, store: Store, hub: BroadcastHub):
        self.store = store
        self.hub = hub
        self._next_id = 1

    async def start(self):
        """Continue numbering after the highest id already stored."""
        self._next_id = max(self._next_id, await self.store.max_alert_id() + 1)

    def _allocate_id(self) -> int:
        alert_id = self._next_id
        self._next_id += 1
        return alert_id

    async def record(
        self,
        alert_type: AlertType,
        message: str,
        priority: Priority = Priority.MEDIUM,
        expires_in: Optional[float] = None,
        require_persisted: bool = False,
    ) -> int:
        """Persist and publish a new alert.

        Args:
            alert_type: Kind of alert.
            message: Human-readable text.
            priority: Alert priority.
            expires_in: Optional lifetime in seconds.
            require_persisted: Raise after publishing if the store write failed.

        Returns:
            The new alert id.

        Raises:
            TransientStoreError: only with ``require_persisted``, when the alert
                was published but could not be stored.
        """
        now = utcnow()
        alert = Alert(
            id=self._allocate_id(),
            type=alert_type,
            message=message,
            priority=priority,
            timestamp=now,
            expires_at=now + timedelta(seconds=expires_in) if expires_in else None,
        )

        failure: Optional[TransientStoreError] = None
        try:
            await write_with_retry(self.store.add_alert, alert, description=f"alert {alert.id}")
        except TransientStoreError as e:
            alert.persisted = False
            logger.error(f"Alert {alert.id} published without being persisted: {e}")
            failure = e

        logger.info(f"Alert {alert.id} [{priority.value}] {alert_type.value}: {message}")
        self.hub.publish(EVENT_ALERT_NEW, alert.to_dict())
        if failure is not None and require_persisted:
            raise failure
        return alert.id

    async def acknowledge(self, alert_id: int) -> bool:
        """Acknowledge an alert.

        Returns:
            True if the alert changed, False if it was already acknowledged.

        Raises:
            NotFoundError: if the alert does not exist.
            TransientStoreError: if the store failed twice.
        """
        changed = await write_with_retry(
            self.store.acknowledge_alert, alert_id, description=f"acknowledgement of alert {alert_id}"
        )
        if changed:
            logger.info(f"Alert {alert_id} acknowledged")
            self.hub.publish(EVENT_ALERT_ACKNOWLEDGED, {"alertId": alert_id})
        else:
            logger.debug(f"Alert {alert_id} was already acknowledged")
        return changed

    async def get(self, alert_id: int) -> Optional[Alert]:
        return await self.store.get_alert(alert_id)

    async def list(
        self,
        alert_type: Optional[AlertType] = None,
        acknowledged: Optional[bool] = None,
        page: int = 1,
        limit: int = DEFAULT_ALERT_PAGE_SIZE,
    ) -> AlertPage:
        """List alerts newest first with optional filters."""
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        alerts, total = await self.store.list_alerts(
            alert_type=alert_type,
            acknowledged=acknowledged,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return AlertPage(alerts=alerts, total=total, page=page, limit=limit)
