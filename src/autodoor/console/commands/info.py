# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Status and help commands."""

from typing import TYPE_CHECKING

from .base import CommandInfo, CommandResult, command, get_command_registry

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem

_CATEGORY_TITLES = [
    ("door", "Door Operations"),
    ("alerts", "Alerts"),
    ("settings", "Settings"),
    ("info", "Info"),
    ("control", "Control"),
]


class InfoCommandsMixin:
    """Mixin providing status and help commands."""

    system: "AutoDoorSystem"

    @command("status", ["s"], "Show door and sensor status", category="info")
    def status(self) -> CommandResult:
        """Show current door status."""
        status = self.system.status()
        reading = self.system.latest_reading()

        lines = [
            "Door Status:",
            f"  Door: {status['status'].upper()}",
            f"  Last change: {status['timestamp']}",
            f"  Trigger: {status['trigger'] or 'none'}",
            f"  Auto-close timer: {status['autoCloseTimer']:g}s",
        ]
        if status["autoCloseDeadline"]:
            lines.append(f"  Auto-close at: {status['autoCloseDeadline']}")
        lines.append(f"  Sensor: {'running' if self.system.sensor.running else 'stopped'}")
        if reading is not None:
            lines.append(
                f"  Last reading: {reading.distance:.1f}cm (threshold {reading.threshold:g}cm)"
            )
        return CommandResult(True, "\n".join(lines), status)

    @command("stats", [], "Show statistics for the last 24 hours", category="info")
    async def stats(self) -> CommandResult:
        """Show door, alert and system statistics."""
        stats = await self.system.stats()
        door, alerts, system = stats["door"], stats["alerts"], stats["system"]
        lines = [
            "Last 24 hours:",
            f"  Door operations: {door['totalOperations']} "
            f"({door['opens']} opens, {door['closes']} closes, {door['automatic']} automatic)",
            f"  Last activity: {door['lastActivity'] or 'never'}",
            f"  Alerts: {alerts['total']} "
            f"({alerts['unacknowledged']} unacknowledged, {alerts['highPriority']} high priority)",
            f"  Uptime: {system['uptime']:.0f}s",
            f"  Sensor: {'active' if system['sensorActive'] else 'inactive'}, "
            f"threshold {system['currentThreshold']:g}cm",
        ]
        return CommandResult(True, "\n".join(lines), stats)

    @command("health", [], "Show persistence and runtime health", category="info")
    def health(self) -> CommandResult:
        """Show system health."""
        health = self.system.health()
        persistence = health["persistence"]
        lines = [
            f"Health: {'OK' if health['healthy'] else 'DEGRADED'}",
            f"  Pending writes: {persistence['pending']}",
            f"  Completed writes: {persistence['completed']}",
            f"  Failed writes: {persistence['failed']}",
            f"  Subscribers: {health['subscribers']}",
        ]
        if persistence["lastError"]:
            lines.append(f"  Last error: {persistence['lastError']}")
        return CommandResult(True, "\n".join(lines), health)

    @command("help", ["?", "h"], "Show this help", category="info")
    def help(self) -> CommandResult:
        """Show help."""
        return CommandResult(True, self.get_help())

    def get_help(self) -> str:
        """Help text for every registered command, grouped by category."""
        grouped: dict[str, list[CommandInfo]] = {}
        for info in get_command_registry().commands():
            grouped.setdefault(info.category, []).append(info)

        lines = ["Commands:"]
        for category, title in _CATEGORY_TITLES:
            if category not in grouped:
                continue
            lines.append(f"\n{title}:")
            for info in sorted(grouped[category], key=lambda i: i.name):
                names = info.name
                if info.aliases:
                    names += f" ({', '.join(info.aliases)})"
                if info.usage:
                    names += f" {info.usage}"
                lines.append(f"  {names} - {info.description}")
        return "\n".join(lines)
