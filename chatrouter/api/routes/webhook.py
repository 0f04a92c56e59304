import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from chatrouter.api.deps import get_router, get_user_directory
from chatrouter.core.config import Settings, get_settings
from chatrouter.core.security import verify_signature, verify_subscription
from chatrouter.schemas.inbound import (
    ConversationContext,
    InboundMessage,
    WhatsAppWebhookPayload,
)
from chatrouter.schemas.responses import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/webhook",
    response_class=PlainTextResponse,
    summary="Answer the channel's subscription verification challenge",
)
async def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    config: Settings = Depends(get_settings),
) -> PlainTextResponse:
    if not mode or not token or not challenge:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing required parameters")

    answer = verify_subscription(mode, token, challenge, config.whatsapp_verify_token)
    if answer is None:
        logger.warning("webhook verification failed", extra={"mode": mode})
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Verification failed")
    return PlainTextResponse(answer)


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    response_model=WebhookAck,
    summary="Acknowledge inbound messages and route them in the background",
)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    config: Settings = Depends(get_settings),
) -> WebhookAck:
    """
    Primary ingress for the messaging channel.

    The response is sent before any routing happens, and it never depends on
    the routing core being buildable: collaborators are resolved inside the
    background task.
    """
    raw_body = await request.body()
    if config.whatsapp_app_secret and not verify_signature(
        raw_body,
        request.headers.get("X-Hub-Signature-256"),
        config.whatsapp_app_secret,
    ):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    try:
        payload = WhatsAppWebhookPayload.model_validate_json(raw_body)
    except ValidationError:
        logger.warning("webhook payload rejected", extra={"body_length": len(raw_body)})
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid JSON payload")

    accepted = 0
    for item in payload.messages():
        message = item.to_inbound()
        if message is None:
            logger.info(
                "unsupported message skipped",
                extra={"message_type": item.type, "delivery_id": item.id},
            )
            continue
        background_tasks.add_task(process_inbound, message)
        accepted += 1

    return WebhookAck(success=True, accepted=accepted)


async def process_inbound(message: InboundMessage) -> None:
    """Detached unit of work for one message; never raises into the server."""
    try:
        message_router = await get_router()
        directory = await get_user_directory()
        language = await directory.get_language(message.sender_id)
        context = ConversationContext(user_id=message.sender_id, language=language)
        await message_router.route(message, context)
    except Exception:
        logger.exception("background processing failed", extra={"delivery_id": message.id})
