import asyncio
import json

import pytest

from chatrouter.errors import ParseError, ProviderTransportError
from chatrouter.schemas.decision import Action, Decision
from chatrouter.schemas.results import AttemptOutcome
from chatrouter.services.decision_engine import (
    EXHAUSTED_REASONING,
    DecisionEngine,
    normalize_decision,
    parse_provider_output,
    quick_setup_decision,
    sanitize_profile_update,
)
from chatrouter.services.provider_chain import ProviderChain
from tests.fakes import FakeClassifier, context


def _engine(*classifiers):
    return DecisionEngine(ProviderChain(classifiers, timeout_seconds=1.0))


def _reply(**payload):
    return json.dumps(payload)


def test_quick_setup_triple_is_resolved_locally():
    provider = FakeClassifier("p1", [_reply(action="CHAT", confidence=0.9)])

    analysis = asyncio.run(_engine(provider).analyze("25 170 65", context()))

    decision = analysis.decision
    assert decision.action == Action.UPDATE_PROFILE
    assert decision.confidence == pytest.approx(0.99)
    assert decision.extracted_data.age == 25
    assert decision.extracted_data.height == 170
    assert decision.extracted_data.weight == 65
    assert provider.calls == []


def test_quick_setup_ignores_out_of_range_triples():
    assert quick_setup_decision("25 999 65") is None
    assert quick_setup_decision("25 170") is None


def test_view_profile_request():
    provider = FakeClassifier(
        "p1", [_reply(action="VIEW_PROFILE", confidence=0.95, reasoning="asks to see profile")]
    )

    decision = asyncio.run(_engine(provider).decide("show me my profile", context()))

    assert decision.action == Action.VIEW_PROFILE
    assert decision.confidence == pytest.approx(0.95)
    assert decision.extracted_data is None
    system_prompt, user_prompt = provider.calls[0]
    assert "VIEW_PROFILE" in system_prompt
    assert "show me my profile" in user_prompt


def test_numeric_string_confidence_is_kept():
    provider = FakeClassifier("p1", [_reply(action="VIEW_STATS", confidence="0.9")])

    decision = asyncio.run(_engine(provider).decide("how am I doing this week", context()))

    assert decision.action == Action.VIEW_STATS
    assert decision.confidence == pytest.approx(0.9)


def test_absolute_weight_update():
    provider = FakeClassifier(
        "p1",
        [_reply(action="UPDATE_PROFILE", confidence=0.97, extractedData={"weight": 79})],
    )

    decision = asyncio.run(_engine(provider).decide("I'm now 79kg", context()))

    assert decision.action == Action.UPDATE_PROFILE
    assert decision.extracted_data.weight == 79
    assert decision.extracted_data.weight_delta is None


def test_relative_weight_change_uses_weight_delta():
    provider = FakeClassifier(
        "p1",
        [_reply(action="UPDATE_PROFILE", confidence=0.9, extractedData={"weightDelta": 2})],
    )

    decision = asyncio.run(_engine(provider).decide("I gained 2kg", context()))

    assert decision.extracted_data.weight is None
    assert decision.extracted_data.weight_delta == 2
    assert decision.extracted_data.as_payload() == {"weightDelta": 2.0}


def test_fenced_output_is_accepted():
    raw = "```json\n" + _reply(action="VIEW_STATS", confidence=0.8) + "\n```"
    assert parse_provider_output(raw, "p1").action == Action.VIEW_STATS


def test_unparseable_output_falls_back_to_next_provider():
    primary = FakeClassifier("p1", ["Sure! Here is your answer."])
    secondary = FakeClassifier("p2", [_reply(action="HELP", confidence=0.9)])

    analysis = asyncio.run(_engine(primary, secondary).analyze("how does this work", context()))

    assert analysis.decision.action == Action.HELP
    assert [a.outcome for a in analysis.attempts] == [
        AttemptOutcome.PARSE_ERROR,
        AttemptOutcome.SUCCESS,
    ]


def test_exhausted_chain_yields_unknown():
    engine = _engine(
        FakeClassifier("p1", [ProviderTransportError("down", "p1")]),
        FakeClassifier("p2", ["{}"]),
    )

    analysis = asyncio.run(engine.analyze("hmm", context()))

    assert analysis.decision.action == Action.UNKNOWN
    assert analysis.decision.confidence == 0.0
    assert analysis.decision.reasoning == EXHAUSTED_REASONING
    assert len(analysis.attempts) == 2


def test_engine_without_providers_yields_unknown():
    decision = asyncio.run(_engine().decide("hello", context()))
    assert decision.action == Action.UNKNOWN
    assert decision.confidence == 0.0


@pytest.mark.parametrize(
    "raw_confidence, expected",
    [
        (1.7, 1.0),
        (-0.2, 0.0),
        ("high", 0.0),
        (None, 0.0),
        (True, 0.0),
        (0.42, 0.42),
        ("0.95", 0.95),
        (" 1.5 ", 1.0),
        ("nan", 0.0),
        (float("inf"), 0.0),
    ],
)
def test_confidence_is_clamped(raw_confidence, expected):
    decision = normalize_decision({"action": "VIEW_STATS", "confidence": raw_confidence})
    assert decision.confidence == pytest.approx(expected)


def test_unrecognized_action_becomes_unknown():
    decision = normalize_decision({"action": "DANCE", "confidence": 0.9})
    assert decision.action == Action.UNKNOWN
    assert decision.confidence == 0.0


def test_unknown_action_forces_zero_confidence():
    decision = normalize_decision({"action": "UNKNOWN", "confidence": 0.8, "reasoning": "unclear"})
    assert decision.confidence == 0.0
    assert decision.reasoning == "unclear"


def test_action_spelling_is_normalized():
    assert normalize_decision({"action": "view profile", "confidence": 0.9}).action == Action.VIEW_PROFILE
    assert normalize_decision({"action": "view-history", "confidence": 0.9}).action == Action.VIEW_HISTORY


@pytest.mark.parametrize("payload", [{}, {"action": 3}, {"action": "  "}])
def test_missing_action_is_a_parse_error(payload):
    with pytest.raises(ParseError):
        normalize_decision(payload, "p1")


@pytest.mark.parametrize("raw", ["", "[1, 2]", "not json", '"VIEW_STATS"'])
def test_non_object_output_is_a_parse_error(raw):
    with pytest.raises(ParseError):
        parse_provider_output(raw, "p1")


def test_extracted_data_only_survives_on_profile_updates():
    decision = normalize_decision(
        {"action": "VIEW_STATS", "confidence": 0.9, "extractedData": {"weight": 70}}
    )
    assert decision.extracted_data is None


def test_invalid_profile_fields_are_dropped_individually():
    update = sanitize_profile_update(
        {
            "height": 300,
            "age": 25,
            "gender": "Male",
            "goal": "Lose Weight",
            "activityLevel": "very active",
            "weight": "heavy",
        }
    )
    assert update.height is None
    assert update.weight is None
    assert update.age == 25
    assert update.gender == "male"
    assert update.goal == "lose-weight"
    assert update.activity_level == "very-active"


def test_absolute_weight_wins_over_delta():
    update = sanitize_profile_update({"weight": 70, "weightDelta": -2})
    assert update.weight == 70
    assert update.weight_delta is None


def test_zero_or_excessive_delta_is_dropped():
    assert sanitize_profile_update({"weightDelta": 0}) is None
    assert sanitize_profile_update({"weightDelta": 150}) is None
    assert sanitize_profile_update({"weightChange": -3}).weight_delta == -3


def test_update_without_valid_fields_keeps_action():
    decision = normalize_decision(
        {"action": "UPDATE_PROFILE", "confidence": 0.6, "extractedData": {"height": 10}}
    )
    assert decision.action == Action.UPDATE_PROFILE
    assert decision.extracted_data is None


def test_decision_model_rejects_inconsistent_states():
    with pytest.raises(ValueError):
        Decision(action=Action.UNKNOWN, confidence=0.5)
