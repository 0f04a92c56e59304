from __future__ import annotations

from typing import Any, Dict, Protocol, runtime_checkable

from chatrouter.schemas.inbound import ConversationContext, InboundMessage
from chatrouter.schemas.results import RouteTarget


@runtime_checkable
class Handler(Protocol):
    """Business-logic module that executes one Action or Command.

    ``payload`` carries ``args`` for commands, ``extractedData`` for profile
    updates and the original ``text`` in every case. Handlers own persistence
    and reply composition; they may raise.
    """

    async def handle(
        self,
        target: RouteTarget,
        payload: Dict[str, Any],
        context: ConversationContext,
    ) -> None:
        ...


@runtime_checkable
class ConversationHandler(Handler, Protocol):
    """Generic conversational fallback, also responsible for failure notices."""

    async def notify_failure(
        self,
        message: InboundMessage,
        context: ConversationContext,
        error: BaseException,
    ) -> None:
        ...
