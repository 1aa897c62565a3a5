# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Door controller.

The controller is the only code allowed to change the door state. Manual
requests, sensor detections and the auto-close timer all go through
``_transition`` while holding one ``asyncio.Lock``, so two callers can never
both perform the side effects of the same transition.

State-aware behavior:
- Open while open, or close while closed: no-op (no log, no alert, no event)
- Closed -> Open: start the auto-close timer for the configured duration
- Open -> Closed: cancel any pending auto-close timer

The auto-close timer carries the generation number of the open interval it
was started for. When it fires it re-checks the current generation and
state under the lock, so a timer that lost a race with a manual close does
nothing.

Durable side effects (log row and door-operation alert) are queued on the
``PersistenceQueue`` after the lock is released, so requests never wait on
storage.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from .alerts import AlertEngine
from .broadcast import BroadcastHub
from .const import DEFAULT_AUTO_CLOSE_TIMER, EVENT_DOOR_STATUS
from .errors import InvariantViolation, ValidationError
from .models import (
    AlertType,
    DoorLogEntry,
    DoorState,
    DoorStatus,
    LogAction,
    Priority,
    Trigger,
    utcnow,
)
from .store import Store, write_with_retry
from .writer import PersistenceQueue

logger = logging.getLogger(__name__)

_ALERT_MESSAGES = {
    (DoorStatus.OPEN, Trigger.MANUAL): ("Door opened manually", Priority.MEDIUM),
    (DoorStatus.OPEN, Trigger.AUTOMATIC): ("Door opened automatically", Priority.MEDIUM),
    (DoorStatus.CLOSED, Trigger.MANUAL): ("Door closed manually", Priority.MEDIUM),
    (DoorStatus.CLOSED, Trigger.AUTOMATIC): ("Door closed automatically", Priority.MEDIUM),
    (DoorStatus.CLOSED, Trigger.TIMEOUT): ("Door closed automatically", Priority.LOW),
}


class DoorController:
    """Sole authority over the door state.

    Example:
        door = DoorController(store, alerts, hub, writer, auto_close_seconds=30)
        state = await door.open()
        assert state.is_open
        await door.close()
    """

    def __init__(
        self,
        store: Store,
        alerts: AlertEngine,
        hub: BroadcastHub,
        writer: PersistenceQueue,
        auto_close_seconds: float = DEFAULT_AUTO_CLOSE_TIMER,
    ):
        self.store = store
        self.alerts = alerts
        self.hub = hub
        self.writer = writer
        self._auto_close_seconds = float(auto_close_seconds)
        self._state = DoorState()
        self._lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        # Incremented on every transition; identifies the open interval a timer belongs to
        self._generation = 0
        self.transition_count = 0

    @property
    def auto_close_seconds(self) -> float:
        return self._auto_close_seconds

    @property
    def timer_pending(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def status(self) -> DoorState:
        """Current state snapshot. Never blocks."""
        return self._state

    def reconfigure_auto_close_duration(self, seconds: float):
        """Change the auto-close duration used for future opens.

        A timer that is already running keeps its original deadline.
        """
        if seconds <= 0:
            raise ValidationError("auto-close duration must be positive")
        self._auto_close_seconds = float(seconds)
        logger.info(f"Auto-close duration set to {seconds}s (applies to next open)")

    async def open(
        self, trigger: Trigger = Trigger.MANUAL, sensor_distance: Optional[float] = None
    ) -> DoorState:
        """Open the door. Returns the resulting state; a no-op if already open."""
        return await self._request(DoorStatus.OPEN, trigger, sensor_distance)

    async def close(
        self, trigger: Trigger = Trigger.MANUAL, sensor_distance: Optional[float] = None
    ) -> DoorState:
        """Close the door. Returns the resulting state; a no-op if already closed."""
        return await self._request(DoorStatus.CLOSED, trigger, sensor_distance)

    async def _request(
        self, target: DoorStatus, trigger: Trigger, sensor_distance: Optional[float]
    ) -> DoorState:
        async with self._lock:
            if self._state.status is target:
                logger.debug(f"{target.value.capitalize()} request ignored (already {target.value})")
                return self._state
            state = self._transition(target, trigger)
        self._queue_side_effects(state, sensor_distance)
        return state

    def _transition(self, target: DoorStatus, trigger: Trigger) -> DoorState:
        """Apply a transition. Caller must hold the lock."""
        now = utcnow()
        self._generation += 1
        self._cancel_timer()

        if target is DoorStatus.OPEN:
            duration = self._auto_close_seconds
            self._state = DoorState(
                status=DoorStatus.OPEN,
                last_updated=now,
                trigger=trigger,
                auto_close_deadline=now + timedelta(seconds=duration),
            )
            self._timer_task = asyncio.create_task(
                self._auto_close_after(duration, self._generation)
            )
        else:
            self._state = DoorState(status=DoorStatus.CLOSED, last_updated=now, trigger=trigger)

        self.transition_count += 1
        logger.info(f"Door {target.value} ({trigger.value})")
        # Published under the lock so subscribers see transitions in order
        self.hub.publish(EVENT_DOOR_STATUS, self._state.to_dict())
        return self._state

    def _cancel_timer(self):
        task = self._timer_task
        self._timer_task = None
        # The timer task itself may be closing the door; it must not cancel itself
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _auto_close_after(self, seconds: float, generation: int):
        """Auto-close timer task."""
        await asyncio.sleep(seconds)
        await self._on_auto_close(generation)

    async def _on_auto_close(self, generation: int):
        async with self._lock:
            if generation != self._generation:
                logger.debug("Auto-close timer superseded by a later transition, ignoring")
                return

            if self._state.status is not DoorStatus.OPEN:
                # A live timer must belong to an open interval
                self._report_violation(
                    InvariantViolation("Auto-close timer fired while the door was closed")
                )
                return

            if self._state.auto_close_deadline is None:
                self._report_violation(
                    InvariantViolation("Open door had no auto-close deadline")
                )

            state = self._transition(DoorStatus.CLOSED, Trigger.TIMEOUT)
        self._queue_side_effects(state, None)

    async def force_close(self, reason: str) -> DoorState:
        """Drive the door to the closed safe state after a detected fault."""
        self._report_violation(InvariantViolation(reason))
        async with self._lock:
            if self._state.status is DoorStatus.CLOSED:
                self._generation += 1
                self._cancel_timer()
                return self._state
            state = self._transition(DoorStatus.CLOSED, Trigger.AUTOMATIC)
        self._queue_side_effects(state, None)
        return state

    def _report_violation(self, error: InvariantViolation):
        logger.critical(f"Invariant violation: {error}; forcing door to safe state")
        self.writer.submit(
            "system error alert",
            lambda: self.alerts.record(
                AlertType.SYSTEM_ERROR,
                f"Door controller fault: {error}",
                Priority.HIGH,
                require_persisted=True,
            ),
        )

    def _queue_side_effects(self, state: DoorState, sensor_distance: Optional[float]):
        action = LogAction.OPENED if state.is_open else LogAction.CLOSED
        entry = DoorLogEntry(
            action=action,
            trigger_type=state.trigger,
            sensor_distance=sensor_distance,
            timestamp=state.last_updated,
        )
        message, priority = _ALERT_MESSAGES[(state.status, state.trigger)]

        self.writer.submit(
            f"door log ({action.value})",
            lambda: write_with_retry(
                self.store.add_door_log, entry, description=f"door log ({action.value})"
            ),
        )
        self.writer.submit(
            f"door alert ({action.value})",
            lambda: self.alerts.record(
                AlertType.DOOR_OPERATION, message, priority, require_persisted=True
            ),
        )

    async def shutdown(self):
        """Cancel the auto-close timer without changing the door state."""
        async with self._lock:
            task = self._timer_task
            self._cancel_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
