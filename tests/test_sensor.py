# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the sensor engine (sensor.py)."""
from __future__ import annotations

import asyncio
import random

import pytest

from autodoor import (
    AlertEngine,
    AlertType,
    BroadcastHub,
    DoorController,
    DoorStatus,
    MemoryStore,
    PersistenceQueue,
    SensorConfig,
    SensorEngine,
    Trigger,
    ValidationError,
)
from autodoor.const import EVENT_ALERT_NEW, EVENT_SENSOR_DISTANCE


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def sensor_config():
    """Default sensor tunables."""
    return SensorConfig()


@pytest.fixture
async def sensor(door, alerts, hub, sensor_config, fake_clock):
    """Create a sensor with a seeded random source and a fake clock."""
    engine = SensorEngine(
        door,
        alerts,
        hub,
        config=sensor_config,
        threshold=200,
        interval_ms=500,
        rng=random.Random(3),
        clock=fake_clock,
    )
    yield engine
    await engine.stop()
    engine.close()


def human_alerts(store):
    return [a for a in store.alerts.values() if a.type is AlertType.HUMAN_DETECTED]


# ============================================================================
# Detection Policy
# ============================================================================

class TestDetectionPolicy:
    """Detection needs both the threshold and the near-field cutoff."""

    @pytest.mark.asyncio
    async def test_close_reading_is_detection(self, sensor):
        assert sensor.is_detection(90)

    @pytest.mark.asyncio
    async def test_below_threshold_but_far_is_not_detection(self, sensor):
        """150cm is under the 200cm threshold but outside the near field."""
        assert not sensor.is_detection(150)

    @pytest.mark.asyncio
    async def test_low_threshold_wins(self, sensor):
        sensor.set_threshold(80)
        assert not sensor.is_detection(90)
        assert sensor.is_detection(70)

    @pytest.mark.asyncio
    async def test_threshold_change_applies_to_next_reading(self, sensor):
        """A new threshold should be copied into the next reading."""
        sensor.set_threshold(80)
        reading = await sensor.process(90)
        assert reading.threshold == 80
        assert sensor.detection_count == 0


# ============================================================================
# Debounce
# ============================================================================

class TestDebounce:
    """Detections inside the cooldown window are suppressed."""

    @pytest.mark.asyncio
    async def test_reading_sequence_detects_once(
        self, sensor, door, store, writer, settle_writes, fake_clock
    ):
        """250, 180, 90, 90 one second apart should detect once, at the third reading."""
        detected_at = []
        for index, distance in enumerate([250, 180, 90, 90]):
            before = sensor.detection_count
            await sensor.process(distance)
            if sensor.detection_count > before:
                detected_at.append(index)
            fake_clock.advance(1)

        await settle_writes(writer)
        assert detected_at == [2]
        assert door.transition_count == 1
        assert door.status().status is DoorStatus.OPEN
        assert door.status().trigger is Trigger.AUTOMATIC
        assert len(human_alerts(store)) == 1

    @pytest.mark.asyncio
    async def test_detection_after_cooldown(self, sensor, store, writer, settle_writes, fake_clock):
        """A detection after the cooldown should be accepted again."""
        await sensor.process(90)
        fake_clock.advance(4.9)
        await sensor.process(85)
        assert sensor.detection_count == 1

        fake_clock.advance(0.2)
        await sensor.process(80)
        await settle_writes(writer)
        assert sensor.detection_count == 2
        assert len(human_alerts(store)) == 2

    @pytest.mark.asyncio
    async def test_suppressed_detection_has_no_side_effects(
        self, sensor, door, store, writer, settle_writes, fake_clock
    ):
        """Suppressed detections should not touch the door even after it closed."""
        await sensor.process(90)
        await door.close()
        fake_clock.advance(2)

        await sensor.process(90)
        await settle_writes(writer)
        assert door.status().status is DoorStatus.CLOSED
        assert door.transition_count == 2
        assert len(human_alerts(store)) == 1

    @pytest.mark.asyncio
    async def test_detection_while_open_keeps_door_open(
        self, sensor, door, store, writer, settle_writes, fake_clock
    ):
        """A detection while already open is a door no-op but still alerts."""
        await door.open()
        fake_clock.advance(10)
        await sensor.process(60)
        await settle_writes(writer)

        assert door.transition_count == 1
        assert len(human_alerts(store)) == 1


# ============================================================================
# Readings
# ============================================================================

class TestReadings:
    """Tests for published readings."""

    @pytest.mark.asyncio
    async def test_every_reading_is_published(self, sensor, make_recorder, hub):
        """Each reading should publish a distance update with the threshold."""
        rec = make_recorder(hub, [EVENT_SENSOR_DISTANCE])
        await sensor.process(123.456)
        await sensor.process(300)

        events = rec.drain()
        assert [e.payload["distance"] for e in events] == [123.5, 300]
        assert all(e.payload["threshold"] == 200 for e in events)

    @pytest.mark.asyncio
    async def test_subscription_in_generation_order(self, sensor):
        """Readings should arrive once each, in order."""
        sub = sensor.readings()
        produced = [await sensor.tick() for _ in range(3)]

        received = [sub.get_nowait() for _ in range(3)]
        assert received == produced
        assert sub.get_nowait() is None
        assert sensor.last_reading is produced[-1]

    @pytest.mark.asyncio
    async def test_closed_subscription_ends_iteration(self, sensor):
        """A closed subscription should stop after queued readings."""
        sub = sensor.readings()
        await sensor.tick()
        sub.close()
        await sensor.tick()

        items = [reading async for reading in sub]
        assert len(items) == 1


# ============================================================================
# Random Walk
# ============================================================================

class TestRandomWalk:
    """Tests for the simulated distance signal."""

    @pytest.mark.asyncio
    async def test_values_stay_in_bounds(self, sensor):
        values = [sensor.next_distance() for _ in range(2000)]
        assert all(20 <= v <= 400 for v in values)
        # Roughly 10% near jumps
        near = [v for v in values if v < 50]
        assert 20 < len(near) < 200

    @pytest.mark.asyncio
    async def test_far_walk_is_smooth(self, door, alerts, hub):
        """Without near jumps, steps are bounded and clamped."""
        engine = SensorEngine(
            door,
            alerts,
            hub,
            config=SensorConfig(near_probability=0.0),
            rng=random.Random(11),
        )
        previous = engine.config.initial_distance
        for _ in range(1000):
            value = engine.next_distance()
            assert 50 <= value <= 400
            assert abs(value - previous) <= 10
            previous = value


# ============================================================================
# Ticker
# ============================================================================

class TestTicker:
    """Tests for the periodic ticker and its reconfiguration."""

    @pytest.mark.asyncio
    async def test_start_stop(self, sensor):
        await sensor.set_interval(50)
        await sensor.start()
        assert sensor.running
        await asyncio.sleep(0.3)
        assert sensor.tick_count >= 3

        await sensor.stop()
        assert not sensor.running
        count = sensor.tick_count
        await asyncio.sleep(0.15)
        assert sensor.tick_count == count

    @pytest.mark.asyncio
    async def test_interval_change_restarts_single_ticker(self, sensor):
        """Switching 500ms -> 100ms should leave one ticker at the new cadence."""
        await sensor.start()
        await asyncio.sleep(0.05)
        await sensor.set_interval(100)

        start = sensor.tick_count
        await asyncio.sleep(0.55)
        ticks = sensor.tick_count - start
        assert 3 <= ticks <= 6
        assert sensor.interval_ms == 100

    @pytest.mark.asyncio
    async def test_old_ticker_is_cancelled(self, sensor):
        """After slowing down, the old fast ticker must not keep ticking."""
        await sensor.set_interval(50)
        await sensor.start()
        await asyncio.sleep(0.12)
        await sensor.set_interval(1000)

        start = sensor.tick_count
        await asyncio.sleep(0.5)
        assert sensor.tick_count == start

    @pytest.mark.asyncio
    async def test_set_interval_while_stopped(self, sensor):
        """Changing the interval should not start a stopped sensor."""
        await sensor.set_interval(250)
        assert sensor.interval_ms == 250
        assert not sensor.running

    @pytest.mark.asyncio
    async def test_invalid_interval(self, sensor):
        with pytest.raises(ValidationError):
            await sensor.set_interval(0)


# ============================================================================
# Detection Side Effects
# ============================================================================

class SlowAlertStore(MemoryStore):
    """Memory store whose alert writes take a while."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def add_alert(self, alert):
        await asyncio.sleep(self.delay)
        await super().add_alert(alert)


class TestDetectionSideEffects:
    """Detection alerts are written in the background."""

    @pytest.mark.asyncio
    async def test_slow_alert_store_does_not_slow_ticker(self):
        """Ticks keep their cadence while the detection alert is being stored."""
        store = SlowAlertStore(delay=0.5)
        hub = BroadcastHub()
        writer = PersistenceQueue()
        writer.start()
        alerts = AlertEngine(store, hub)
        await alerts.start()
        door = DoorController(store, alerts, hub, writer, auto_close_seconds=30)
        engine = SensorEngine(
            door,
            alerts,
            hub,
            config=SensorConfig(near_probability=1.0),
            interval_ms=50,
            rng=random.Random(1),
        )

        await engine.start()
        await asyncio.sleep(0.6)
        ticks = engine.tick_count
        await engine.stop()
        await door.shutdown()
        await writer.stop()

        assert ticks >= 8
        assert engine.detection_count == 1
        assert len(human_alerts(store)) == 1

    @pytest.mark.asyncio
    async def test_store_outage_reaches_health(
        self, sensor, store, writer, settle_writes, make_recorder, hub
    ):
        """A failed detection alert write marks persistence unhealthy."""
        rec = make_recorder(hub, [EVENT_ALERT_NEW])
        store.set_online(False)

        await sensor.process(90)
        await settle_writes(writer)

        assert not writer.healthy
        assert writer.failed == 3
        human = [e for e in rec.drain() if e.payload["type"] == "human_detected"]
        assert len(human) == 1
        assert human[0].payload["persisted"] is False

    @pytest.mark.asyncio
    async def test_stop_finishes_detection_in_progress(
        self, sensor, door, store, writer, settle_writes
    ):
        """A detection cut off by cancellation still completes before stop returns."""
        task = asyncio.create_task(sensor.process(90))
        await asyncio.sleep(0)
        assert sensor.pending_reactions == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await sensor.stop()
        assert sensor.pending_reactions == 0
        assert door.status().status is DoorStatus.OPEN

        await settle_writes(writer)
        assert len(human_alerts(store)) == 1
