# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""prompt_toolkit components for the interactive console.

Provides tab completion of command names and argument choices, persistent
history, and the InteractiveSession input loop used by cli.py.
"""

from pathlib import Path
from typing import Callable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.styles import Style

from .commands.base import ARG_TOGGLE, CommandInfo, get_command_registry

# Imported so every command mixin registers its commands
from .commands.handler import CommandHandler  # noqa: F401

HISTORY_FILE = Path.home() / ".autodoor_history"

CONSOLE_STYLE = Style.from_dict(
    {
        "prompt.open": "#00aa00 bold",  # Green while the door is open
        "prompt.closed": "#ffffff bold",
    }
)


class ConsoleCompleter(Completer):
    """Tab completion for console commands and their argument choices."""

    def _get_commands(self) -> list[tuple[str, str]]:
        """Get all command names and aliases with descriptions."""
        commands = []
        for info in get_command_registry().commands():
            commands.append((info.name, info.description))
            for alias in info.aliases:
                commands.append((alias, f"Alias for {info.name}"))
        return sorted(commands, key=lambda x: x[0])

    def _get_arg_options(self, info: CommandInfo, position: int) -> list[tuple[str, str]]:
        """Get choices for the argument at ``position``."""
        if position >= len(info.args):
            return []
        arg = info.args[position]
        if arg.arg_type == ARG_TOGGLE:
            return [("on", "Enable"), ("off", "Disable")]
        if arg.choices:
            return [(c.lower(), arg.name) for c in arg.choices]
        return []

    def get_completions(self, document, complete_event):
        """Generate completions for the current input."""
        text = document.text_before_cursor
        words = text.split()

        if not text or text.endswith(" "):
            word_before = ""
            completed_words = words
        else:
            word_before = words[-1] if words else ""
            completed_words = words[:-1] if words else []

        if not completed_words:
            candidates = self._get_commands()
        else:
            info = get_command_registry().lookup(completed_words[0])
            if info is None:
                return
            candidates = self._get_arg_options(info, len(completed_words) - 1)

        for name, desc in candidates:
            if name.startswith(word_before.lower()):
                yield Completion(name, start_position=-len(word_before), display_meta=desc)


def make_history(history_file: Optional[str]) -> History:
    """File-backed history, or in-memory when ``history_file`` is None or "none"."""
    if history_file is None or history_file.lower() == "none":
        return InMemoryHistory()
    return FileHistory(str(Path(history_file).expanduser()))


class InteractiveSession:
    """Interactive prompt session with history and completion.

    Usage:
        session = InteractiveSession(history_file, is_open=lambda: door_open)
        async for line in session.input_loop(stop_check=stop_event.is_set):
            result = await handler.execute(line)
    """

    def __init__(
        self,
        history_file: Optional[str] = None,
        is_open: Optional[Callable[[], bool]] = None,
        prompt_text: str = "autodoor> ",
    ):
        self._prompt_text = prompt_text
        self._is_open = is_open
        self._session = PromptSession(
            history=make_history(history_file),
            completer=ConsoleCompleter(),
            complete_while_typing=False,
            style=CONSOLE_STYLE,
            auto_suggest=AutoSuggestFromHistory(),
            enable_history_search=True,
        )

    def _get_prompt(self):
        if self._is_open is None:
            return self._prompt_text
        style = "class:prompt.open" if self._is_open() else "class:prompt.closed"
        return FormattedText([(style, self._prompt_text)])

    def invalidate(self):
        """Redraw the prompt (e.g. after the door state changed)."""
        app = self._session.app
        if app.is_running:
            app.invalidate()

    async def prompt_async(self) -> Optional[str]:
        """Read one line. Returns None on EOF, "" on Ctrl-C."""
        try:
            line = await self._session.prompt_async(self._get_prompt)
        except EOFError:
            return None
        except KeyboardInterrupt:
            return ""
        return line.strip()

    async def input_loop(self, stop_check: Optional[Callable[[], bool]] = None):
        """Async generator of non-empty input lines until EOF or stop."""
        while True:
            if stop_check and stop_check():
                break
            line = await self.prompt_async()
            if line is None:
                break
            if line:
                yield line
