from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from chatrouter.handlers import Handler, HandlerRegistry
from chatrouter.schemas.decision import CONVERSATIONAL_ACTIONS, Action, Command, Decision
from chatrouter.schemas.inbound import ConversationContext, InboundMessage
from chatrouter.schemas.results import CommandMatch, DispatchOutcome, RouteTarget

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Invokes exactly one handler per resolved message.

    Handler exceptions stop here: they are logged and turned into a
    best-effort failure notice through the conversation handler. Handlers are
    never retried.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        *,
        commands: Iterable[Command] = tuple(Command),
        min_confidence: float = 0.0,
    ) -> None:
        registry.validate(commands)
        self._registry = registry
        self._min_confidence = min_confidence

    async def dispatch_command(
        self,
        match: CommandMatch,
        message: InboundMessage,
        context: ConversationContext,
    ) -> DispatchOutcome:
        if not match.has_required_args:
            logger.warning(
                "command invoked with too few arguments",
                extra={"command": match.command.value, "command_args": list(match.args)},
            )
        handler = self._registry.for_command(match.command)
        if handler is None:
            # validate() guarantees registration for table commands; guard against others.
            logger.error("no handler for command %s", match.command.value)
            handler = self._registry.conversation
        payload = {"text": message.text, "args": list(match.args)}
        return await self._invoke(match.command, handler, payload, message, context)

    async def dispatch_decision(
        self,
        decision: Decision,
        message: InboundMessage,
        context: ConversationContext,
    ) -> DispatchOutcome:
        payload: Dict[str, Any] = {"text": message.text, "confidence": decision.confidence}
        handler = self._handler_for(decision)
        if decision.action == Action.UPDATE_PROFILE and decision.extracted_data is not None:
            payload["extractedData"] = decision.extracted_data.as_payload()
        return await self._invoke(decision.action, handler, payload, message, context)

    def _handler_for(self, decision: Decision) -> Handler:
        if decision.action in CONVERSATIONAL_ACTIONS:
            return self._registry.conversation
        if decision.confidence < self._min_confidence:
            logger.info(
                "low confidence decision sent to conversation handler",
                extra={"action": decision.action.value, "confidence": decision.confidence},
            )
            return self._registry.conversation
        handler: Optional[Handler] = self._registry.for_action(decision.action)
        return handler or self._registry.conversation

    async def _invoke(
        self,
        target: RouteTarget,
        handler: Handler,
        payload: Dict[str, Any],
        message: InboundMessage,
        context: ConversationContext,
    ) -> DispatchOutcome:
        handler_name = type(handler).__name__
        logger.info("dispatching", extra={"target": target.value, "handler": handler_name})
        try:
            await handler.handle(target, payload, context)
        except Exception as exc:
            logger.exception(
                "handler failed",
                extra={"target": target.value, "handler": handler_name},
            )
            await self._notify_failure(message, context, exc)
            return DispatchOutcome(
                target=target,
                handler=handler_name,
                succeeded=False,
                error=type(exc).__name__,
            )
        return DispatchOutcome(target=target, handler=handler_name)

    async def _notify_failure(
        self,
        message: InboundMessage,
        context: ConversationContext,
        error: Exception,
    ) -> None:
        try:
            await self._registry.conversation.notify_failure(message, context, error)
        except Exception:
            logger.exception("failure notification could not be delivered")
