# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Settings commands."""

from typing import TYPE_CHECKING

from ...settings import SETTING_SPECS
from .base import ArgSpec, CommandResult, command

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem


class SettingsCommandsMixin:
    """Mixin providing settings commands."""

    system: "AutoDoorSystem"

    @command("settings", [], "Show all settings", category="settings")
    async def settings(self) -> CommandResult:
        """Show every setting with its description."""
        rows = await self.system.get_settings()
        lines = ["Settings:"]
        for row in rows:
            lines.append(f"  {row.key}: {row.value}  ({row.description})")
        return CommandResult(True, "\n".join(lines), {r.key: r.value for r in rows})

    @command(
        "set",
        [],
        "Change a setting",
        category="settings",
        args=[
            ArgSpec("key", "choice", choices=sorted(SETTING_SPECS)),
            ArgSpec("value", "string"),
        ],
    )
    async def set(self, key: str, value: str) -> CommandResult:
        """Validate, persist and apply a setting."""
        row = await self.system.update_setting(key, value)
        return CommandResult(True, f"{row.key} set to {row.value}", row.to_dict())
