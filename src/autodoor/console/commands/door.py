# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Door operation commands."""

from typing import TYPE_CHECKING

from ...const import DEFAULT_LOG_LIMIT
from .base import ArgSpec, CommandResult, command

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem


def _describe_state(status: dict) -> str:
    line = f"Door is {status['status'].upper()}"
    if status.get("trigger"):
        line += f" ({status['trigger']})"
    if status.get("autoCloseDeadline"):
        line += f", auto-close at {status['autoCloseDeadline']}"
    return line


class DoorCommandsMixin:
    """Mixin providing door operation commands."""

    system: "AutoDoorSystem"

    @command("open", ["o"], "Open the door", category="door")
    async def open(self) -> CommandResult:
        """Open the door manually."""
        state = await self.system.request("open")
        return CommandResult(True, _describe_state(state.to_dict()), state.to_dict())

    @command("close", ["c"], "Close the door", category="door")
    async def close(self) -> CommandResult:
        """Close the door manually."""
        state = await self.system.request("close")
        return CommandResult(True, _describe_state(state.to_dict()), state.to_dict())

    @command(
        "logs",
        ["log"],
        "Show recent door operations",
        category="door",
        args=[
            ArgSpec(
                "limit",
                "int",
                required=False,
                default=DEFAULT_LOG_LIMIT,
                min_value=1,
                description="Number of entries to show",
            )
        ],
    )
    async def logs(self, limit: int = DEFAULT_LOG_LIMIT) -> CommandResult:
        """Show the door operation log, newest first."""
        entries = await self.system.door_logs(limit)
        if not entries:
            return CommandResult(True, "No door operations recorded", {"logs": []})

        lines = [f"Door log ({len(entries)} entries):"]
        for entry in entries:
            distance = (
                f" at {entry.sensor_distance:.1f}cm" if entry.sensor_distance is not None else ""
            )
            lines.append(
                f"  {entry.timestamp:%Y-%m-%d %H:%M:%S} "
                f"{entry.action.value} ({entry.trigger_type.value}){distance}"
            )
        return CommandResult(True, "\n".join(lines), {"logs": [e.to_dict() for e in entries]})
