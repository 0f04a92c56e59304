from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from chatrouter.schemas.decision import Decision
from chatrouter.schemas.inbound import Language


class WebhookAck(BaseModel):
    """Immediate acknowledgement returned to the channel."""

    success: bool = True
    accepted: int = Field(default=0, description="Text messages scheduled for routing.")


class AnalyzeRequest(BaseModel):
    text: str = Field(description="Message text to classify.")
    user_id: str = Field(default="diagnostics")
    language: Language = Field(default=Language.EN)


class AnalyzeResponse(BaseModel):
    """How a message would be routed, without dispatching it."""

    kind: str = Field(description="'command' for deterministic matches, otherwise 'decision'.")
    detected_language: Language
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    decision: Optional[Decision] = None
    attempts: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Provider attempts made while classifying.",
    )
