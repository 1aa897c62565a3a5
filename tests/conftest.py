# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Pytest configuration and fixtures for automatic door tests."""
from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from autodoor import (
    AlertEngine,
    AutoDoorSystem,
    BroadcastEvent,
    BroadcastHub,
    DoorController,
    KernelConfig,
    MemoryStore,
    PersistenceQueue,
    SensorConfig,
)

# Stands in for the 30 second production auto-close timer
FAST_AUTO_CLOSE = 0.2


# ============================================================================
# Helpers
# ============================================================================

class FakeClock:
    """Manually advanced monotonic clock for cooldown tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class EventRecorder:
    """Collects hub events for assertions."""

    def __init__(self, hub: BroadcastHub, events: Optional[list[str]] = None):
        self.subscription = hub.subscribe(events)
        self.events: list[BroadcastEvent] = []

    def drain(self) -> list[BroadcastEvent]:
        """Move every queued event into ``events`` and return them all."""
        while True:
            event = self.subscription.get_nowait()
            if event is None:
                break
            self.events.append(event)
        return self.events

    def named(self, name: str) -> list[BroadcastEvent]:
        return [e for e in self.drain() if e.name == name]

    def close(self) -> None:
        self.subscription.close()


async def settle(writer: PersistenceQueue) -> None:
    """Let background writes triggered so far complete."""
    await asyncio.sleep(0)
    await writer.join()


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def store() -> MemoryStore:
    """Create an in-memory store."""
    return MemoryStore()


@pytest.fixture
def hub() -> BroadcastHub:
    """Create a broadcast hub."""
    return BroadcastHub()


@pytest.fixture
def recorder(hub) -> EventRecorder:
    """Record every event published on the hub."""
    rec = EventRecorder(hub)
    yield rec
    rec.close()


@pytest.fixture
async def writer():
    """Create and start a persistence writer."""
    queue = PersistenceQueue()
    queue.start()
    yield queue
    await queue.stop()


@pytest.fixture
async def alerts(store, hub) -> AlertEngine:
    """Create an alert engine."""
    engine = AlertEngine(store, hub)
    await engine.start()
    return engine


@pytest.fixture
async def door(store, alerts, hub, writer):
    """Create a door controller with a fast auto-close timer."""
    controller = DoorController(store, alerts, hub, writer, auto_close_seconds=FAST_AUTO_CLOSE)
    yield controller
    await controller.shutdown()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_recorder():
    """Factory for event recorders on arbitrary hubs."""
    created = []

    def factory(hub: BroadcastHub, events: Optional[list[str]] = None) -> EventRecorder:
        rec = EventRecorder(hub, events)
        created.append(rec)
        return rec

    yield factory
    for rec in created:
        rec.close()


@pytest.fixture
def settle_writes():
    """Return a coroutine function waiting for queued writes to finish."""
    return settle


# ============================================================================
# System Fixtures
# ============================================================================

@pytest.fixture
def fast_config() -> KernelConfig:
    """Configuration with the sensor ticker disabled."""
    return KernelConfig(sensor=SensorConfig(), sensor_enabled=False)


@pytest.fixture
async def system(fast_config, store):
    """Create and start a door system on a memory store."""
    sys_ = AutoDoorSystem(fast_config, store=store)
    await sys_.start()
    yield sys_
    await sys_.stop()
