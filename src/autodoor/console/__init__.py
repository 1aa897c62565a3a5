# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Operator console for the automatic door system.

Usage:
    autodoor                    # Interactive console, in-memory store
    autodoor -b sqlite:///door.db --show-sensor
    autodoor --daemon --run-for 60
"""

from .cli import main, run_console
from .commands import CommandHandler, CommandResult

__all__ = ["CommandHandler", "CommandResult", "main", "run_console"]
