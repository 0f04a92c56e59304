from __future__ import annotations

import json
import logging
import math
import re
from typing import Annotated, Any, Dict, Mapping, Optional

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chatrouter.clients.base import Classifier
from chatrouter.errors import ParseError
from chatrouter.schemas.decision import Action, Decision, ProfileUpdate
from chatrouter.schemas.inbound import ConversationContext
from chatrouter.schemas.results import Analysis
from chatrouter.services.provider_chain import ProviderChain

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the conversation router of a WhatsApp nutrition tracking assistant.
Decide what the user wants done and answer with ONE JSON object, nothing else.

Actions:
- VIEW_PROFILE: the user asks to SEE their profile.
- UPDATE_PROFILE: the user PROVIDES profile information (height, weight, age, gender, goal, activity level).
- VIEW_STATS: the user asks to see nutrition statistics or analysis.
- VIEW_HISTORY: the user asks to see or review past meal records.
- HELP: the user needs instructions.
- START: the user wants to start or restart.
- SETTINGS: the user wants to change settings or language.
- CHAT: greetings, nutrition questions and any other conversation.
- UNKNOWN: the intent is unclear.

Rules:
1. Asking for information is VIEW_*, providing information is UPDATE_PROFILE.
   "show me my profile" -> VIEW_PROFILE. "I'm now 79kg" -> UPDATE_PROFILE with weight 79.
2. Three bare numbers "age height weight" are a quick setup: "25 170 65" -> age 25, height 170, weight 65.
3. A relative change goes to weightDelta, never weight: "I gained 2kg" -> weightDelta 2, "lost 3kg" -> weightDelta -3.
4. Convert to kg and cm: 1 jin (斤) = 0.5 kg, 1 lb = 0.4536 kg, 1 inch = 2.54 cm.
5. goal is one of lose-weight, gain-muscle, control-sugar, maintain.
   activityLevel is one of sedentary, light, moderate, active, very-active.
6. Only UPDATE_PROFILE carries extractedData.

Response format:
{"action": "ACTION_NAME", "confidence": 0.95, "reasoning": "short explanation", "extractedData": {"weight": 79}}

Examples:
User: "我的个人信息" -> {"action": "VIEW_PROFILE", "confidence": 0.98, "reasoning": "asks to view profile"}
User: "I'm now 79kg and my height is 165cm" -> {"action": "UPDATE_PROFILE", "confidence": 0.99, "reasoning": "provides weight and height", "extractedData": {"height": 165, "weight": 79}}
User: "胖了两斤" -> {"action": "UPDATE_PROFILE", "confidence": 0.9, "reasoning": "relative weight gain", "extractedData": {"weightDelta": 1}}
User: "我想减肥" -> {"action": "UPDATE_PROFILE", "confidence": 0.95, "reasoning": "goal change", "extractedData": {"goal": "lose-weight"}}
User: "我想看一下数据分析" -> {"action": "VIEW_STATS", "confidence": 0.97, "reasoning": "asks for statistics"}
User: "show my meals" -> {"action": "VIEW_HISTORY", "confidence": 0.96, "reasoning": "asks for meal history"}
User: "你好" -> {"action": "CHAT", "confidence": 0.9, "reasoning": "greeting"}
User: "how many calories should I eat?" -> {"action": "CHAT", "confidence": 0.92, "reasoning": "nutrition question"}"""

EXHAUSTED_REASONING = "classification unavailable"

GOALS = ("lose-weight", "gain-muscle", "control-sugar", "maintain")
ACTIVITY_LEVELS = ("sedentary", "light", "moderate", "active", "very-active")

# Provider spellings accepted for each profile field.
FIELD_ALIASES: Mapping[str, tuple[str, ...]] = {
    "height": ("height",),
    "weight": ("weight",),
    "age": ("age",),
    "gender": ("gender",),
    "goal": ("goal",),
    "activity_level": ("activityLevel", "activity_level"),
    "weight_delta": ("weightDelta", "weight_delta", "weightChange"),
}

_FIELD_ADAPTERS: Mapping[str, TypeAdapter] = {
    "height": TypeAdapter(Annotated[float, Field(ge=50, le=272)]),
    "weight": TypeAdapter(Annotated[float, Field(ge=20, le=500)]),
    "age": TypeAdapter(Annotated[int, Field(ge=1, le=120)]),
    "weight_delta": TypeAdapter(Annotated[float, Field(ge=-100, le=100)]),
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_QUICK_SETUP = re.compile(r"^\s*(\d{1,3})\s+(\d{2,3}(?:\.\d+)?)\s+(\d{2,3}(?:\.\d+)?)\s*$")


def build_user_prompt(text: str, context: ConversationContext) -> str:
    return (
        "User context:\n"
        f"- Language: {context.language.value}\n"
        f"- User ID: {context.user_id}\n\n"
        f'User message: "{text}"\n\n'
        "Analyze and respond with JSON:"
    )


def _normalize_choice(value: Any, allowed: tuple[str, ...]) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = re.sub(r"[\s_]+", "-", value.strip().lower())
    return normalized if normalized in allowed else None


def _validate_field(name: str, value: Any) -> Any:
    """Return the validated value, or None when it is missing or out of range."""
    if value is None or isinstance(value, bool):
        return None
    if name == "gender":
        gender = value.strip().lower() if isinstance(value, str) else None
        return gender if gender in ("male", "female") else None
    if name == "goal":
        return _normalize_choice(value, GOALS)
    if name == "activity_level":
        return _normalize_choice(value, ACTIVITY_LEVELS)
    try:
        validated = _FIELD_ADAPTERS[name].validate_python(value)
    except PydanticValidationError:
        return None
    if name == "weight_delta" and validated == 0:
        return None
    return validated


def sanitize_profile_update(raw: Any) -> Optional[ProfileUpdate]:
    """
    Keep only profile fields with in-range values.

    Invalid fields are dropped individually. When a provider reports both an
    absolute weight and a relative change, the absolute weight is kept.
    """
    if not isinstance(raw, Mapping):
        return None

    fields: Dict[str, Any] = {}
    for name, spellings in FIELD_ALIASES.items():
        for spelling in spellings:
            if spelling in raw:
                value = _validate_field(name, raw[spelling])
                if value is not None:
                    fields[name] = value
                else:
                    logger.debug("dropping invalid profile field %s=%r", spelling, raw[spelling])
                break

    if "weight" in fields and "weight_delta" in fields:
        logger.debug("dropping weightDelta alongside absolute weight")
        fields.pop("weight_delta")
    if not fields:
        return None
    return ProfileUpdate(**fields)


def _coerce_confidence(value: Any) -> float:
    """Clamp to [0, 1]; numeric strings are accepted, anything else scores 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0.0
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0.0
    return float(min(1.0, max(0.0, value)))


def _coerce_action(value: str) -> Optional[Action]:
    normalized = re.sub(r"[\s-]+", "_", value.strip().upper())
    try:
        return Action(normalized)
    except ValueError:
        return None


def normalize_decision(payload: Mapping[str, Any], provider_id: str = "unknown") -> Decision:
    """
    Turn a decoded provider object into a valid ``Decision``.

    Raises ``ParseError`` only when ``action`` is missing or not a string; every
    other problem is repaired by dropping or clamping the offending field.
    """
    raw_action = payload.get("action")
    if not isinstance(raw_action, str) or not raw_action.strip():
        raise ParseError("Provider output has no action string.", provider_id)

    reasoning = payload.get("reasoning")
    reasoning = reasoning.strip() if isinstance(reasoning, str) else ""

    action = _coerce_action(raw_action)
    if action is None:
        logger.warning(
            "provider returned unknown action",
            extra={"provider": provider_id, "raw_action": raw_action[:50]},
        )
        return Decision.unknown(reasoning or f"unrecognized action {raw_action[:50]!r}")
    if action == Action.UNKNOWN:
        return Decision.unknown(reasoning)

    extracted = None
    if action == Action.UPDATE_PROFILE:
        extracted = sanitize_profile_update(
            payload.get("extractedData", payload.get("extracted_data"))
        )

    return Decision(
        action=action,
        confidence=_coerce_confidence(payload.get("confidence")),
        reasoning=reasoning,
        extracted_data=extracted,
    )


def parse_provider_output(raw: str, provider_id: str = "unknown") -> Decision:
    """Decode raw provider text (optionally fenced as Markdown) into a ``Decision``."""
    if not isinstance(raw, str) or not raw.strip():
        raise ParseError("Provider returned empty output.", provider_id)

    cleaned = _CODE_FENCE.sub("", raw.strip()).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Provider output is not JSON: {exc}", provider_id, exc) from exc
    if not isinstance(payload, dict):
        raise ParseError("Provider output is not a JSON object.", provider_id)
    return normalize_decision(payload, provider_id)


def quick_setup_decision(text: str) -> Optional[Decision]:
    """Resolve the bare ``age height weight`` triple without a provider call."""
    matched = _QUICK_SETUP.match(text or "")
    if not matched:
        return None
    age, height, weight = matched.groups()
    update = sanitize_profile_update({"age": int(age), "height": float(height), "weight": float(weight)})
    if update is None or None in (update.age, update.height, update.weight):
        return None
    return Decision(
        action=Action.UPDATE_PROFILE,
        confidence=0.99,
        reasoning="quick setup triple: age height weight",
        extracted_data=update,
    )


class DecisionEngine:
    """Classifies free-form text through the provider chain into a validated ``Decision``."""

    def __init__(
        self,
        chain: ProviderChain,
        *,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self._chain = chain
        self._system_prompt = system_prompt

    async def analyze(self, text: str, context: ConversationContext) -> Analysis:
        shortcut = quick_setup_decision(text)
        if shortcut is not None:
            logger.info("quick setup resolved locally", extra={"action": shortcut.action.value})
            return Analysis(decision=shortcut)

        user_prompt = build_user_prompt(text, context)

        async def _classify(classifier: Classifier) -> Decision:
            raw = await classifier.classify(self._system_prompt, user_prompt, context)
            return parse_provider_output(raw, classifier.provider_id)

        result = await self._chain.first_success(_classify)
        if not result.succeeded:
            logger.error(
                "all classifier providers failed",
                extra={
                    "providers": [attempt.provider_id for attempt in result.attempts],
                    "errors": [attempt.error for attempt in result.attempts],
                },
            )
            return Analysis(decision=Decision.unknown(EXHAUSTED_REASONING), attempts=result.attempts)

        decision: Decision = result.value
        logger.info(
            "decision made",
            extra={
                "action": decision.action.value,
                "confidence": decision.confidence,
                "reasoning": decision.reasoning,
                "provider": result.attempts[-1].provider_id,
            },
        )
        return Analysis(decision=decision, attempts=result.attempts)

    async def decide(self, text: str, context: ConversationContext) -> Decision:
        analysis = await self.analyze(text, context)
        return analysis.decision
