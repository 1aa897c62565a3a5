# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Operator commands for the automatic door console.

The command handler is split into category-specific mixins:
- DoorCommandsMixin: Door operations (open, close, logs)
- AlertCommandsMixin: Alert listing and acknowledgement
- SettingsCommandsMixin: Settings display and updates
- InfoCommandsMixin: Status, statistics, health and help
- ControlCommandsMixin: Sensor control, debug logging and shutdown
"""

from .base import (
    ArgSpec,
    ArgumentError,
    CommandInfo,
    CommandRegistry,
    CommandResult,
    command,
    get_command_registry,
)
from .handler import CommandHandler

__all__ = [
    "ArgSpec",
    "ArgumentError",
    "CommandHandler",
    "CommandInfo",
    "CommandRegistry",
    "CommandResult",
    "command",
    "get_command_registry",
]
