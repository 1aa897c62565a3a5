# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the alert engine (alerts.py)."""
from __future__ import annotations

from datetime import timedelta

import pytest

from autodoor import (
    Alert,
    AlertEngine,
    AlertType,
    NotFoundError,
    Priority,
    TransientStoreError,
    ValidationError,
)
from autodoor.const import EVENT_ALERT_ACKNOWLEDGED, EVENT_ALERT_NEW


class TestRecord:
    """Tests for recording alerts."""

    @pytest.mark.asyncio
    async def test_record_persists_and_publishes(self, alerts, store, recorder):
        """A recorded alert should be stored and announced."""
        alert_id = await alerts.record(
            AlertType.HUMAN_DETECTED, "Human detected within range", Priority.MEDIUM
        )

        stored = store.alerts[alert_id]
        assert stored.type is AlertType.HUMAN_DETECTED
        assert stored.acknowledged is False

        events = recorder.named(EVENT_ALERT_NEW)
        assert len(events) == 1
        payload = events[0].payload
        assert payload["id"] == alert_id
        assert payload["type"] == "human_detected"
        assert payload["priority"] == "medium"
        assert payload["persisted"] is True
        assert payload["expiresAt"] is None

    @pytest.mark.asyncio
    async def test_ids_increase(self, alerts):
        first = await alerts.record(AlertType.MAINTENANCE, "one")
        second = await alerts.record(AlertType.MAINTENANCE, "two")
        assert second == first + 1

    @pytest.mark.asyncio
    async def test_numbering_continues_after_stored_alerts(self, store, hub):
        """A new engine should not reuse ids already in the store."""
        await store.add_alert(Alert(id=41, type=AlertType.MAINTENANCE, message="old"))
        engine = AlertEngine(store, hub)
        await engine.start()
        assert await engine.record(AlertType.MAINTENANCE, "new") == 42

    @pytest.mark.asyncio
    async def test_expiry(self, alerts, store):
        """expires_in should set expires_at relative to the timestamp."""
        alert_id = await alerts.record(AlertType.MAINTENANCE, "Filter check", expires_in=3600)
        alert = store.alerts[alert_id]
        assert alert.expires_at - alert.timestamp == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_store_down_publishes_unpersisted(self, alerts, store, recorder):
        """With the store down the alert is still published, flagged as not persisted."""
        store.set_online(False)
        alert_id = await alerts.record(AlertType.SYSTEM_ERROR, "disk full", Priority.HIGH)

        assert alert_id not in store.alerts
        payload = recorder.named(EVENT_ALERT_NEW)[0].payload
        assert payload["id"] == alert_id
        assert payload["persisted"] is False

    @pytest.mark.asyncio
    async def test_store_down_with_required_persistence(self, alerts, store, recorder):
        """When persistence is required the failure is raised after publishing."""
        store.set_online(False)
        with pytest.raises(TransientStoreError):
            await alerts.record(
                AlertType.DOOR_OPERATION, "Door opened manually", require_persisted=True
            )

        payload = recorder.named(EVENT_ALERT_NEW)[0].payload
        assert payload["persisted"] is False
        assert store.alerts == {}


class TestAcknowledge:
    """Tests for acknowledgement."""

    @pytest.mark.asyncio
    async def test_acknowledge_twice(self, alerts, recorder):
        """First call changes the alert, second reports no change."""
        alert_id = await alerts.record(AlertType.DOOR_OPERATION, "Door opened manually")

        assert await alerts.acknowledge(alert_id) is True
        assert await alerts.acknowledge(alert_id) is False

        acks = recorder.named(EVENT_ALERT_ACKNOWLEDGED)
        assert [e.payload for e in acks] == [{"alertId": alert_id}]

    @pytest.mark.asyncio
    async def test_acknowledge_unknown(self, alerts):
        """Unknown ids are reported as not found every time."""
        for _ in range(2):
            with pytest.raises(NotFoundError):
                await alerts.acknowledge(999)

    @pytest.mark.asyncio
    async def test_acknowledge_with_store_down(self, alerts, store):
        alert_id = await alerts.record(AlertType.MAINTENANCE, "check")
        store.set_online(False)
        with pytest.raises(TransientStoreError):
            await alerts.acknowledge(alert_id)


class TestList:
    """Tests for listing and pagination."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, alerts):
        ids = [await alerts.record(AlertType.MAINTENANCE, f"alert {i}") for i in range(5)]

        page = await alerts.list(page=1, limit=2)
        assert [a.id for a in page.alerts] == [ids[4], ids[3]]
        assert page.total == 5
        assert page.pages == 3

        last = await alerts.list(page=3, limit=2)
        assert [a.id for a in last.alerts] == [ids[0]]

    @pytest.mark.asyncio
    async def test_filters(self, alerts):
        door_id = await alerts.record(AlertType.DOOR_OPERATION, "Door opened manually")
        await alerts.record(AlertType.HUMAN_DETECTED, "Human detected within range")
        await alerts.acknowledge(door_id)

        by_type = await alerts.list(alert_type=AlertType.DOOR_OPERATION)
        assert [a.id for a in by_type.alerts] == [door_id]

        unacked = await alerts.list(acknowledged=False)
        assert unacked.total == 1
        assert unacked.alerts[0].type is AlertType.HUMAN_DETECTED

    @pytest.mark.asyncio
    async def test_invalid_paging(self, alerts):
        with pytest.raises(ValidationError):
            await alerts.list(page=0)
        with pytest.raises(ValidationError):
            await alerts.list(limit=0)
