from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Action(str, Enum):
    """Closed outcome taxonomy for free-form messages."""

    VIEW_PROFILE = "VIEW_PROFILE"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    VIEW_STATS = "VIEW_STATS"
    VIEW_HISTORY = "VIEW_HISTORY"
    HELP = "HELP"
    START = "START"
    SETTINGS = "SETTINGS"
    CHAT = "CHAT"
    UNKNOWN = "UNKNOWN"


# Actions answered by the generic conversation handler instead of their own one.
CONVERSATIONAL_ACTIONS = frozenset({Action.CHAT, Action.UNKNOWN})


class Command(str, Enum):
    """Keyword-triggered operations matched without a provider call."""

    START = "start"
    PROFILE = "profile"
    HELP = "help"
    STATS = "stats"
    HISTORY = "history"
    SETTINGS = "settings"
    STREAK = "streak"
    BUDGET = "budget"
    CARD = "card"
    REMINDERS = "reminders"
    COMPARE = "compare"
    PROGRESS = "progress"
    PREFERENCES = "preferences"


class ProfileUpdate(BaseModel):
    """Sparse set of profile fields stated in a message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    height: Optional[float] = Field(default=None, description="Height in cm.")
    weight: Optional[float] = Field(default=None, description="Absolute weight in kg.")
    age: Optional[int] = None
    gender: Optional[str] = None
    goal: Optional[str] = None
    activity_level: Optional[str] = Field(default=None, alias="activityLevel")
    weight_delta: Optional[float] = Field(
        default=None,
        alias="weightDelta",
        description="Relative weight change in kg; negative means loss.",
    )

    @model_validator(mode="after")
    def _absolute_or_relative_weight(self) -> "ProfileUpdate":
        if self.weight is not None and self.weight_delta is not None:
            raise ValueError("weight and weightDelta are mutually exclusive")
        return self

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def as_payload(self) -> Dict[str, Any]:
        """Wire representation using the camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Decision(BaseModel):
    """Validated classification of a free-form message."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: Action
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = Field(default="", description="Diagnostic only, never shown to users.")
    extracted_data: Optional[ProfileUpdate] = Field(default=None, alias="extractedData")

    @model_validator(mode="after")
    def _enforce_invariants(self) -> "Decision":
        if self.action == Action.UNKNOWN and self.confidence != 0.0:
            raise ValueError("UNKNOWN decisions carry zero confidence")
        if self.extracted_data is not None and self.action != Action.UPDATE_PROFILE:
            raise ValueError("extractedData is only valid for UPDATE_PROFILE")
        return self

    @classmethod
    def unknown(cls, reasoning: str) -> "Decision":
        return cls(action=Action.UNKNOWN, confidence=0.0, reasoning=reasoning)
