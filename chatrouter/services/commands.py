from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from chatrouter.errors import HandlerRegistrationError
from chatrouter.schemas.decision import Command
from chatrouter.schemas.results import CommandMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandDefinition:
    """A command and the case-insensitive words that trigger it."""

    id: Command
    aliases: FrozenSet[str]
    min_args: int = 0


def define(command: Command, *aliases: str, min_args: int = 0) -> CommandDefinition:
    """Build a definition; every alias is also accepted with a leading slash."""
    normalized = set()
    for alias in (command.value, *aliases):
        word = alias.strip().lower().lstrip("/")
        if not word:
            continue
        normalized.add(word)
        normalized.add(f"/{word}")
    return CommandDefinition(id=command, aliases=frozenset(normalized), min_args=min_args)


DEFAULT_COMMANDS: tuple[CommandDefinition, ...] = (
    define(Command.START, "开始", "開始"),
    define(Command.PROFILE, "画像", "畫像", "个人资料", "個人資料"),
    define(Command.HELP, "帮助", "幫助"),
    define(Command.STATS, "统计", "統計"),
    define(Command.HISTORY, "历史", "歷史"),
    define(Command.SETTINGS, "设置", "設置"),
    define(Command.STREAK, "连续", "連續", "打卡"),
    define(Command.BUDGET, "预算", "預算"),
    define(Command.CARD, "卡片"),
    define(Command.REMINDERS, "提醒"),
    define(Command.COMPARE, "对比", "對比"),
    define(Command.PROGRESS, "进度", "進度"),
    define(Command.PREFERENCES, "偏好"),
)


class CommandTable:
    """Immutable alias -> command lookup built once at startup."""

    def __init__(self, definitions: Iterable[CommandDefinition] = DEFAULT_COMMANDS) -> None:
        aliases: Dict[str, CommandDefinition] = {}
        commands: Dict[Command, CommandDefinition] = {}
        for definition in definitions:
            if definition.id in commands:
                raise HandlerRegistrationError(
                    f"Command '{definition.id.value}' is defined more than once."
                )
            commands[definition.id] = definition
            for alias in definition.aliases:
                key = alias.strip().lower()
                owner = aliases.get(key)
                if owner is not None:
                    raise HandlerRegistrationError(
                        f"Alias '{key}' is claimed by both "
                        f"'{owner.id.value}' and '{definition.id.value}'."
                    )
                aliases[key] = definition
        self._aliases: Mapping[str, CommandDefinition] = aliases
        self._commands: Mapping[Command, CommandDefinition] = commands

    @property
    def commands(self) -> FrozenSet[Command]:
        return frozenset(self._commands)

    def aliases_for(self, command: Command) -> FrozenSet[str]:
        return self._commands[command].aliases

    def lookup(self, alias: str) -> Optional[CommandDefinition]:
        return self._aliases.get(alias)


class CommandMatcher:
    """
    Zero-latency matcher for exact commands and their leading-word forms.

    Matching is performed on the trimmed, lowercased text:

    1. the whole text against the alias table;
    2. the first whitespace-delimited token, with remaining tokens as args.

    A sentence that merely starts with an alias used as an ordinary word still
    matches; that false positive is accepted for the zero-cost common case.
    """

    def __init__(self, table: Optional[CommandTable] = None) -> None:
        self._table = table or CommandTable()

    @property
    def table(self) -> CommandTable:
        return self._table

    def match(self, text: str) -> Optional[CommandMatch]:
        normalized = (text or "").strip().lower()
        if not normalized:
            return None

        definition = self._table.lookup(normalized)
        if definition is not None:
            return CommandMatch(
                command=definition.id, args=(), alias=normalized, min_args=definition.min_args
            )

        first, *rest = normalized.split()
        definition = self._table.lookup(first)
        if definition is None:
            return None
        return CommandMatch(
            command=definition.id,
            args=tuple(rest),
            alias=first,
            min_args=definition.min_args,
        )
