from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from chatrouter.clients.backend import BackendClient
from chatrouter.schemas.decision import Action
from chatrouter.schemas.inbound import ConversationContext, InboundMessage, Language
from chatrouter.schemas.results import RouteTarget

logger = logging.getLogger(__name__)


def _context_payload(context: ConversationContext) -> Dict[str, Any]:
    return context.model_dump(mode="json")


class BackendActionHandler:
    """Forwards a resolved Action or Command to the business backend."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def handle(
        self,
        target: RouteTarget,
        payload: Dict[str, Any],
        context: ConversationContext,
    ) -> None:
        kind = "action" if isinstance(target, Action) else "command"
        await self._client.post_event(
            f"/{kind}s/{target.value.lower()}",
            {
                "kind": kind,
                "target": target.value,
                "payload": payload,
                "context": _context_payload(context),
            },
        )


class BackendConversationHandler:
    """Hands free conversation and failure notices to the backend's chat flow."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def handle(
        self,
        target: RouteTarget,
        payload: Dict[str, Any],
        context: ConversationContext,
    ) -> None:
        await self._client.post_event(
            "/conversation",
            {
                "target": target.value,
                "payload": payload,
                "context": _context_payload(context),
            },
        )

    async def notify_failure(
        self,
        message: InboundMessage,
        context: ConversationContext,
        error: BaseException,
    ) -> None:
        await self._client.post_event(
            "/conversation/failure",
            {
                "message_id": message.id,
                "error_type": type(error).__name__,
                "context": _context_payload(context),
            },
        )


class BackendUserDirectory:
    """Reads and writes the stored language preference through the backend."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def update_language(self, user_id: str, language: Language) -> None:
        await self._client.post_event(
            f"/users/{user_id}/language", {"language": language.value}
        )
        logger.info("user language updated", extra={"language": language.value})

    async def get_language(self, user_id: str) -> Language:
        """Stored preference for ``user_id``; English when unknown or unreachable."""
        try:
            payload = await self._client.get_json(f"/users/{user_id}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("user language lookup failed: %s", exc)
            return Language.EN
        try:
            return Language(payload.get("language") or Language.EN.value)
        except (AttributeError, ValueError):
            return Language.EN
