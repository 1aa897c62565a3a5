# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command handler that combines all command mixins."""

import inspect
import logging
from typing import TYPE_CHECKING, Callable

from ...errors import AutoDoorError
from .alerts import AlertCommandsMixin
from .base import CommandResult, get_command_registry
from .control import ControlCommandsMixin
from .door import DoorCommandsMixin
from .info import InfoCommandsMixin
from .settings import SettingsCommandsMixin

if TYPE_CHECKING:
    from ...kernel import AutoDoorSystem

logger = logging.getLogger(__name__)

_HELP_WORDS = ("help", "?")


class CommandHandler(
    DoorCommandsMixin,
    AlertCommandsMixin,
    SettingsCommandsMixin,
    InfoCommandsMixin,
    ControlCommandsMixin,
):
    """Runs operator commands against an AutoDoorSystem.

    Commands are typed lines passed to execute(), e.g. ``"set auto_close_timer 45"``,
    or the mixin methods called directly (``await handler.ack(3)``).
    Kernel errors become failed results instead of propagating, so a typo
    never ends the console.
    """

    def __init__(self, system: "AutoDoorSystem", stop_callback: Callable[[], None]):
        self.system = system
        self.stop_callback = stop_callback

    async def execute(self, line: str) -> CommandResult:
        words = line.split()
        if not words:
            return CommandResult(False, "Empty command")

        info = get_command_registry().lookup(words[0])
        if info is None:
            return CommandResult(
                False, f"Unknown command: {words[0].lower()}. Type 'help' for commands."
            )

        rest = words[1:]
        if info.args and rest and rest[0].lower() in _HELP_WORDS:
            return CommandResult(True, info.describe_args())

        try:
            values = info.bind(rest)
            result = getattr(self, info.handler.__name__)(*values)
            if inspect.isawaitable(result):
                result = await result
        except AutoDoorError as e:
            return CommandResult(False, str(e))
        except Exception as e:
            logger.exception(f"Command '{line}' failed")
            return CommandResult(False, f"Error: {e}")
        return result
