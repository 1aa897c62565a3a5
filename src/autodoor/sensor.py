# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Simulated distance sensor with debounced human detection.

Every tick the engine produces a new distance, publishes it, and decides
whether it counts as a person near the door:

- Detection requires the distance to be below the configured threshold
  AND below the near-field cutoff
- After an accepted detection, further detections are ignored for the
  cooldown period (no door action, no alert)
- An accepted detection opens the door (automatic trigger) and records a
  human-detected alert
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Callable, Optional

from .alerts import AlertEngine
from .broadcast import BroadcastHub, Subscription
from .config import SensorConfig
from .const import (
    DEFAULT_DETECTION_THRESHOLD,
    DEFAULT_SENSOR_UPDATE_INTERVAL,
    EVENT_SENSOR_DISTANCE,
)
from .door import DoorController
from .errors import ValidationError
from .models import AlertType, Priority, SensorReading, Trigger

logger = logging.getLogger(__name__)


class SensorEngine:
    """Periodic distance generator feeding the door controller.

    Args:
        door: Controller opened on accepted detections.
        alerts: Engine used for human-detected alerts.
        hub: Hub receiving ``sensor:distance-update`` events.
        config: Random walk and detection tunables.
        threshold: Initial detection threshold in cm.
        interval_ms: Initial tick interval in milliseconds.
        rng: Random source, injectable for reproducible runs.
        clock: Monotonic clock in seconds used for the cooldown.
    """

    def __init__(
        self,
        door: DoorController,
        alerts: AlertEngine,
        hub: BroadcastHub,
        config: Optional[SensorConfig] = None,
        threshold: float = DEFAULT_DETECTION_THRESHOLD,
        interval_ms: int = DEFAULT_SENSOR_UPDATE_INTERVAL,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.door = door
        self.alerts = alerts
        self.hub = hub
        self.config = config or SensorConfig()
        self.threshold = float(threshold)
        self._interval_ms = int(interval_ms)
        self._rng = rng or random.Random()
        self._clock = clock

        self._distance = self.config.initial_distance
        self._last_detection: Optional[float] = None
        self._last_reading: Optional[SensorReading] = None
        self._subscribers: list[Subscription[SensorReading]] = []

        self._ticker: Optional[asyncio.Task] = None
        self._ticker_lock = asyncio.Lock()
        self._reactions: set[asyncio.Future] = set()
        self.tick_count = 0
        self.detection_count = 0

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def last_reading(self) -> Optional[SensorReading]:
        return self._last_reading

    # =========================================================================
    # Signal
    # =========================================================================

    def next_distance(self) -> float:
        """Advance the random walk and return the new distance."""
        cfg = self.config
        if self._rng.random() < cfg.near_probability:
            distance = self._rng.uniform(cfg.near_min_distance, cfg.near_max_distance)
        else:
            step = (self._rng.random() - 0.5) * 2 * cfg.max_step
            distance = max(cfg.min_distance, min(cfg.max_distance, self._distance + step))
        self._distance = distance
        return distance

    def is_detection(self, distance: float) -> bool:
        """Whether a distance counts as a person near the door."""
        return distance < self.threshold and distance < self.config.near_field_cutoff

    def set_threshold(self, threshold: float):
        """Change the detection threshold; used from the next reading on."""
        self.threshold = float(threshold)
        logger.info(f"Detection threshold set to {self.threshold:g}cm")

    # =========================================================================
    # Readings
    # =========================================================================

    def readings(self, maxsize: int = 0) -> Subscription[SensorReading]:
        """Subscribe to readings in generation order.

        Each subscription sees every reading produced after it was created,
        once. Closing it detaches it for good.
        """
        subscription: Subscription[SensorReading] = Subscription(
            maxsize=maxsize, on_close=self._subscribers.remove
        )
        self._subscribers.append(subscription)
        return subscription

    async def tick(self) -> SensorReading:
        """Generate and process one reading."""
        self.tick_count += 1
        return await self.process(self.next_distance())

    async def process(self, distance: float) -> SensorReading:
        """Publish a reading and react to it if it is an accepted detection."""
        reading = SensorReading(distance=distance, threshold=self.threshold)
        self._last_reading = reading

        for subscription in list(self._subscribers):
            subscription.deliver(reading)
        self.hub.publish(EVENT_SENSOR_DISTANCE, reading.to_dict())

        if not self.is_detection(distance):
            return reading

        now = self._clock()
        if (
            self._last_detection is not None
            and now - self._last_detection <= self.config.detection_cooldown
        ):
            logger.debug(f"Detection at {distance:.1f}cm suppressed (cooldown)")
            return reading

        # Claimed before awaiting so a concurrent tick cannot accept it twice
        self._last_detection = now
        self.detection_count += 1
        logger.info(f"Human detected at {distance:.1f}cm")
        # A ticker restart must not abandon a detection half-handled
        reaction = asyncio.ensure_future(self._on_detection(distance))
        self._reactions.add(reaction)
        reaction.add_done_callback(self._reactions.discard)
        await asyncio.shield(reaction)
        return reading

    async def _on_detection(self, distance: float):
        await self.door.open(Trigger.AUTOMATIC, sensor_distance=distance)
        self.door.writer.submit(
            "human detected alert",
            lambda: self.alerts.record(
                AlertType.HUMAN_DETECTED,
                "Human detected within range",
                Priority.MEDIUM,
                require_persisted=True,
            ),
        )

    @property
    def pending_reactions(self) -> int:
        """Detections whose door request has not finished yet."""
        return len(self._reactions)

    async def _drain_reactions(self):
        if not self._reactions:
            return
        results = await asyncio.gather(*self._reactions, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error handling detection: {result}")

    # =========================================================================
    # Ticker
    # =========================================================================

    async def start(self):
        """Start the periodic ticker."""
        async with self._ticker_lock:
            if self.running:
                return
            self._ticker = asyncio.create_task(self._ticker_loop(self._interval_ms))
        logger.info(f"Sensor started ({self._interval_ms}ms interval)")

    async def stop(self):
        """Stop the periodic ticker and finish any detection in progress."""
        async with self._ticker_lock:
            was_running = self.running
            await self._cancel_ticker()
        await self._drain_reactions()
        if was_running:
            logger.info("Sensor stopped")

    async def set_interval(self, interval_ms: int):
        """Change the tick cadence.

        The old ticker is cancelled and awaited before the new one starts,
        so there is never more than one ticker running.
        """
        interval_ms = int(interval_ms)
        if interval_ms <= 0:
            raise ValidationError("sensor interval must be positive")

        async with self._ticker_lock:
            self._interval_ms = interval_ms
            if self.running:
                await self._cancel_ticker()
                self._ticker = asyncio.create_task(self._ticker_loop(interval_ms))
        logger.info(f"Sensor interval set to {interval_ms}ms")

    async def _cancel_ticker(self):
        task = self._ticker
        self._ticker = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _ticker_loop(self, interval_ms: int):
        """Background task producing one reading per interval."""
        while True:
            try:
                await asyncio.sleep(interval_ms / 1000)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sensor tick: {e}")

    def close(self):
        """End every reading subscription."""
        for subscription in list(self._subscribers):
            subscription.close()
