from __future__ import annotations

import logging
from typing import Optional, Union

from chatrouter.core.logging import bind_message, reset_message
from chatrouter.schemas.inbound import ConversationContext, InboundMessage
from chatrouter.schemas.results import Analysis, CommandMatch, DispatchOutcome
from chatrouter.services.buttons import goal_decision, navigation_text
from chatrouter.services.commands import CommandMatcher
from chatrouter.services.decision_engine import DecisionEngine
from chatrouter.services.dispatcher import Dispatcher
from chatrouter.services.language import LanguageDetector
from chatrouter.services.state import DeliveryLedger

logger = logging.getLogger(__name__)


class MessageRouter:
    """Entry point of the routing core: one inbound message in, one handler call out."""

    def __init__(
        self,
        *,
        matcher: CommandMatcher,
        engine: DecisionEngine,
        dispatcher: Dispatcher,
        language_detector: Optional[LanguageDetector] = None,
        ledger: Optional[DeliveryLedger] = None,
    ) -> None:
        self._matcher = matcher
        self._engine = engine
        self._dispatcher = dispatcher
        self._language_detector = language_detector or LanguageDetector()
        self._ledger = ledger

    @property
    def language_detector(self) -> LanguageDetector:
        return self._language_detector

    async def route(
        self, message: InboundMessage, context: ConversationContext
    ) -> Optional[DispatchOutcome]:
        """
        Process one message to completion. Never raises.

        Returns the dispatch outcome, or None when the message was dropped
        (duplicate delivery, empty text) or routing itself failed.
        """
        tokens = bind_message(message.id, context.user_id)
        try:
            return await self._route(message, context)
        except Exception:
            logger.exception("message routing failed")
            return None
        finally:
            reset_message(tokens)

    async def resolve(
        self, text: str, context: ConversationContext
    ) -> Union[CommandMatch, Analysis]:
        """Classify ``text`` without dispatching it."""
        match = self._matcher.match(text)
        if match is not None:
            return match
        return await self._engine.analyze(text.strip(), context)

    async def _route(
        self, message: InboundMessage, context: ConversationContext
    ) -> Optional[DispatchOutcome]:
        if self._ledger is not None and not await self._ledger.claim(message.id):
            logger.info("duplicate delivery ignored")
            return None

        if message.button_id is not None:
            return await self._route_button(message, context)

        text = message.text.strip()
        if not text:
            logger.warning("empty text message ignored")
            return None

        logger.info(
            "routing message",
            extra={"text_length": len(text), "language": context.language.value},
        )
        self._detect_language(text, context)

        match = self._matcher.match(text)
        if match is not None:
            logger.info(
                "command matched",
                extra={"command": match.command.value, "command_args": list(match.args)},
            )
            return await self._dispatcher.dispatch_command(match, message, context)

        analysis = await self._engine.analyze(text, context)
        return await self._dispatcher.dispatch_decision(analysis.decision, message, context)

    async def _route_button(
        self, message: InboundMessage, context: ConversationContext
    ) -> Optional[DispatchOutcome]:
        button_id = message.button_id or ""
        logger.info("button pressed", extra={"button_id": button_id})

        command_text = navigation_text(button_id)
        if command_text is not None:
            match = self._matcher.match(command_text)
            if match is not None:
                as_command = message.model_copy(update={"text": command_text})
                return await self._dispatcher.dispatch_command(match, as_command, context)

        decision = goal_decision(button_id)
        if decision is not None:
            return await self._dispatcher.dispatch_decision(decision, message, context)

        logger.warning("unsupported button ignored", extra={"button_id": button_id})
        return None

    def _detect_language(self, text: str, context: ConversationContext) -> None:
        try:
            self._language_detector.detect_and_update(context.user_id, text, context.language)
        except Exception:
            logger.exception("language detection failed")
