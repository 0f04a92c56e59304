from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from chatrouter.errors import HandlerRegistrationError
from chatrouter.schemas.decision import CONVERSATIONAL_ACTIONS, Action, Command

from .backend import BackendActionHandler, BackendConversationHandler, BackendUserDirectory
from .base import ConversationHandler, Handler

# Actions that need a dedicated handler; the rest go to the conversation handler.
ROUTED_ACTIONS = tuple(action for action in Action if action not in CONVERSATIONAL_ACTIONS)


class HandlerRegistry:
    """Startup-time mapping of Actions and Commands to handlers."""

    def __init__(self, conversation: ConversationHandler) -> None:
        self.conversation = conversation
        self._actions: Dict[Action, Handler] = {}
        self._commands: Dict[Command, Handler] = {}

    def register_action(self, action: Action, handler: Handler) -> "HandlerRegistry":
        if action in CONVERSATIONAL_ACTIONS:
            raise HandlerRegistrationError(
                f"{action.value} is always answered by the conversation handler."
            )
        self._actions[action] = handler
        return self

    def register_command(self, command: Command, handler: Handler) -> "HandlerRegistry":
        self._commands[command] = handler
        return self

    def for_action(self, action: Action) -> Optional[Handler]:
        return self._actions.get(action)

    def for_command(self, command: Command) -> Optional[Handler]:
        return self._commands.get(command)

    def validate(self, commands: Iterable[Command]) -> None:
        """Fail fast when any routed Action or matchable Command lacks a handler."""
        missing: List[str] = [a.value for a in ROUTED_ACTIONS if a not in self._actions]
        missing.extend(c.value for c in commands if c not in self._commands)
        if missing:
            raise HandlerRegistrationError(
                f"No handler registered for: {', '.join(sorted(missing))}"
            )


def build_backend_registry(client) -> HandlerRegistry:
    """Wire every routed Action and every Command to the business backend."""
    actions = BackendActionHandler(client)
    registry = HandlerRegistry(BackendConversationHandler(client))
    for action in ROUTED_ACTIONS:
        registry.register_action(action, actions)
    for command in Command:
        registry.register_command(command, actions)
    return registry


__all__ = [
    "BackendActionHandler",
    "BackendConversationHandler",
    "BackendUserDirectory",
    "ConversationHandler",
    "Handler",
    "HandlerRegistry",
    "ROUTED_ACTIONS",
    "build_backend_registry",
]
