# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command registration and argument parsing for the operator console.

Commands are methods on the handler mixins, marked with ``@command``. The
decorator records a ``CommandInfo`` in the shared ``CommandRegistry`` under
the command name and every alias; the handler looks commands up there and
converts the words typed by the operator using each ``ArgSpec``.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from ...errors import ValidationError

ARG_STRING = "string"
ARG_INT = "int"
ARG_FLOAT = "float"
ARG_TOGGLE = "bool_toggle"
ARG_CHOICE = "choice"

_TOGGLE_VALUES = {
    "on": True, "true": True, "yes": True, "1": True,
    "off": False, "false": False, "no": False, "0": False,
}


class ArgumentError(ValidationError):
    """An operator typed an argument the command cannot use."""


@dataclass
class CommandResult:
    """Outcome of one console command."""

    success: bool
    message: str
    data: Optional[dict] = None


@dataclass
class ArgSpec:
    """One positional argument of a console command.

    Attributes:
        name: Shown in usage lines and error messages
        arg_type: One of string, int, float, bool_toggle or choice
        required: Missing optional arguments take ``default``
        choices: Accepted words for choice arguments (case-insensitive)
        min_value: Lower bound for numeric arguments
        max_value: Upper bound for numeric arguments
    """

    name: str
    arg_type: str = ARG_STRING
    required: bool = True
    default: Any = None
    choices: Optional[list[str]] = None
    description: str = ""
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @property
    def placeholder(self) -> str:
        if self.arg_type == ARG_CHOICE and self.choices:
            body = "|".join(self.choices)
        elif self.arg_type == ARG_TOGGLE:
            body = "on|off"
        else:
            body = self.name
        return f"<{body}>" if self.required else f"[{body}]"

    def parse(self, word: str) -> Any:
        """Convert a typed word.

        Raises:
            ArgumentError: if the word does not fit this argument.
        """
        if self.arg_type in (ARG_INT, ARG_FLOAT):
            return self._parse_number(word)

        if self.arg_type == ARG_TOGGLE:
            try:
                return _TOGGLE_VALUES[word.lower()]
            except KeyError:
                raise ArgumentError(f"'{word}' is not valid. Use on/off") from None

        if self.arg_type == ARG_CHOICE:
            for choice in self.choices or []:
                if choice.lower() == word.lower():
                    return choice
            options = ", ".join(self.choices) if self.choices else "none"
            raise ArgumentError(f"'{word}' is not valid. Choose from: {options}")

        return word

    def _parse_number(self, word: str):
        convert = int if self.arg_type == ARG_INT else float
        try:
            value = convert(word)
        except ValueError:
            kind = "integer" if convert is int else "number"
            raise ArgumentError(f"'{word}' is not a valid {kind}") from None

        def shown(limit: float):
            return int(limit) if convert is int else limit

        if self.min_value is not None and value < self.min_value:
            raise ArgumentError(f"'{word}' is below minimum ({shown(self.min_value)})")
        if self.max_value is not None and value > self.max_value:
            raise ArgumentError(f"'{word}' is above maximum ({shown(self.max_value)})")
        return value


@dataclass
class CommandInfo:
    """A registered console command."""

    name: str
    handler: Callable
    aliases: list[str] = field(default_factory=list)
    description: str = ""
    category: str = "misc"
    args: list[ArgSpec] = field(default_factory=list)

    @property
    def usage(self) -> str:
        return " ".join(spec.placeholder for spec in self.args)

    def bind(self, words: list[str]) -> list[Any]:
        """Turn typed words into handler arguments.

        Raises:
            ArgumentError: with a usage line appended.
        """
        if len(words) > len(self.args):
            raise ArgumentError(self._with_usage("Too many arguments"))

        values = []
        for index, spec in enumerate(self.args):
            if index >= len(words):
                if spec.required:
                    raise ArgumentError(
                        self._with_usage(f"Missing required argument: {spec.name}")
                    )
                values.append(spec.default)
                continue
            try:
                values.append(spec.parse(words[index]))
            except ArgumentError as e:
                raise ArgumentError(self._with_usage(str(e))) from None
        return values

    def describe_args(self) -> str:
        """Multi-line help for ``<command> help``."""
        lines = [f"{self.name} {self.usage}".rstrip(), f"  {self.description}"]
        for spec in self.args:
            text = spec.description or spec.arg_type
            if spec.choices:
                text += f" ({', '.join(spec.choices)})"
            if not spec.required and spec.default is not None:
                text += f", default {spec.default}"
            lines.append(f"  {spec.name}: {text}")
        return "\n".join(lines)

    def _with_usage(self, message: str) -> str:
        return f"{message}\nUsage: {self.name} {self.usage}".rstrip()


class CommandRegistry:
    """Commands by name and alias."""

    def __init__(self):
        self._by_word: dict[str, CommandInfo] = {}

    def register(self, info: CommandInfo):
        for word in [info.name, *info.aliases]:
            self._by_word[word] = info

    def lookup(self, word: str) -> Optional[CommandInfo]:
        return self._by_word.get(word.lower())

    def __contains__(self, word: str) -> bool:
        return word.lower() in self._by_word

    def commands(self) -> Iterator[CommandInfo]:
        """Each command once, in registration order."""
        seen = set()
        for info in self._by_word.values():
            if info.name not in seen:
                seen.add(info.name)
                yield info


_registry = CommandRegistry()


def get_command_registry() -> CommandRegistry:
    return _registry


def command(
    name: str,
    aliases: Optional[list[str]] = None,
    description: str = "",
    category: str = "misc",
    args: Optional[list[ArgSpec]] = None,
):
    """Mark a handler method as the console command ``name``."""

    def decorator(func: Callable) -> Callable:
        info = CommandInfo(
            name=name,
            handler=func,
            aliases=list(aliases or []),
            description=description,
            category=category,
            args=list(args or []),
        )
        _registry.register(info)
        func.command_info = info
        return func

    return decorator
