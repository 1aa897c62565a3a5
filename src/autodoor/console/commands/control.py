# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Control commands."""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from .base import ArgSpec, CommandResult, command

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem


class ControlCommandsMixin:
    """Mixin providing control commands."""

    system: "AutoDoorSystem"
    stop_callback: Callable[[], None]

    @command(
        "sensor",
        [],
        "Start or stop the distance sensor",
        category="control",
        args=[
            ArgSpec(
                "state",
                "bool_toggle",
                required=False,
                description="on/off to start or stop, omit to show current state",
            )
        ],
    )
    async def sensor(self, state: Optional[bool] = None) -> CommandResult:
        """Start, stop or report the sensor simulation."""
        if state is None:
            running = self.system.sensor.running
            return CommandResult(
                True,
                f"Sensor: {'on' if running else 'off'} "
                f"({self.system.sensor.interval_ms}ms interval)",
                {"running": running},
            )
        if state:
            await self.system.start_sensor()
            return CommandResult(True, "Sensor started", {"running": True})
        await self.system.stop_sensor()
        return CommandResult(True, "Sensor stopped", {"running": False})

    @command(
        "debug",
        [],
        "Enable or disable debug logging",
        category="control",
        args=[
            ArgSpec(
                "state",
                "bool_toggle",
                required=False,
                description="on/off to set debug mode, omit to show current state",
            )
        ],
    )
    def debug(self, state: Optional[bool] = None) -> CommandResult:
        """Enable or disable debug logging."""
        root_logger = logging.getLogger()

        if state is None:
            is_debug = root_logger.level <= logging.DEBUG
            return CommandResult(True, f"Debug logging: {'on' if is_debug else 'off'}")

        root_logger.setLevel(logging.DEBUG if state else logging.INFO)
        return CommandResult(True, f"Debug logging {'enabled' if state else 'disabled'}")

    @command(
        "shutdown", ["exit", "quit", "q"], "Stop the door system and exit", category="control"
    )
    def shutdown(self) -> CommandResult:
        """Shutdown the console."""
        self.stop_callback()
        return CommandResult(True, "Shutting down...")
