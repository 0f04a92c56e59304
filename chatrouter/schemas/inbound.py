from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Language(str, Enum):
    """Reply languages supported by the assistant."""

    EN = "en"
    ZH_SIMPLIFIED = "zh-CN"
    ZH_TRADITIONAL = "zh-TW"


class InboundMessage(BaseModel):
    """One delivered user message, as handed over by the transport."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Delivery identifier, unique per inbound message.")
    text: str = Field(description="Raw text provided by the end-user.")
    sender_id: str = Field(description="Channel identifier of the sender.")
    button_id: Optional[str] = Field(
        default=None,
        description="Id of the quick-reply button pressed, for interactive messages.",
    )
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ConversationContext(BaseModel):
    """Per-message snapshot of what the caller knows about the user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    language: Language = Field(
        default=Language.EN,
        description="Language currently stored as the user's preference.",
    )
    now: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# WhatsApp Cloud API webhook payload. Only the fields the router reads are
# modelled; everything else is tolerated and ignored.


class WhatsAppText(BaseModel):
    body: str = ""


class WhatsAppButtonReply(BaseModel):
    id: str
    title: str = ""


class WhatsAppInteractive(BaseModel):
    type: str = ""
    button_reply: Optional[WhatsAppButtonReply] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str = Field(alias="from")
    timestamp: Optional[str] = None
    type: str = "text"
    text: Optional[WhatsAppText] = None
    interactive: Optional[WhatsAppInteractive] = None

    def received_at(self) -> datetime:
        """Delivery time reported by the channel, defaulting to now."""
        if self.timestamp:
            try:
                return datetime.fromtimestamp(int(self.timestamp), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError):
                pass
        return datetime.now(timezone.utc)

    def to_inbound(self) -> Optional[InboundMessage]:
        """Routable form of this message; None for types the router does not handle."""
        if self.type == "text" and self.text is not None:
            return InboundMessage(
                id=self.id,
                text=self.text.body,
                sender_id=self.sender,
                received_at=self.received_at(),
            )
        reply = self.interactive.button_reply if self.interactive else None
        if self.type == "interactive" and reply is not None:
            return InboundMessage(
                id=self.id,
                text=reply.title,
                sender_id=self.sender,
                button_id=reply.id,
                received_at=self.received_at(),
            )
        return None


class WhatsAppValue(BaseModel):
    messaging_product: Optional[str] = None
    contacts: List[Dict[str, Any]] = Field(default_factory=list)
    messages: List[WhatsAppMessage] = Field(default_factory=list)
    statuses: List[Dict[str, Any]] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: str = ""
    value: WhatsAppValue = Field(default_factory=WhatsAppValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: List[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    """Inbound payload posted by the WhatsApp Cloud API."""

    object: str = ""
    entry: List[WhatsAppEntry] = Field(default_factory=list)

    def messages(self) -> List[WhatsAppMessage]:
        """Flatten every message carried by a ``messages`` change."""
        collected: List[WhatsAppMessage] = []
        for entry in self.entry:
            for change in entry.changes:
                if change.field != "messages":
                    continue
                collected.extend(change.value.messages)
        return collected
