import asyncio

import pytest

from chatrouter.errors import ParseError, ProviderTransportError
from chatrouter.schemas.results import AttemptOutcome
from chatrouter.services.provider_chain import ProviderChain
from tests.fakes import FakeClassifier, context


def _run(chain):
    ctx = context()
    return asyncio.run(chain.first_success(lambda c: c.classify("system", "user", ctx)))


def test_first_success_stops_the_chain():
    primary = FakeClassifier("p1", ["first"])
    secondary = FakeClassifier("p2", ["second"])

    result = _run(ProviderChain([primary, secondary]))

    assert result.succeeded
    assert result.value == "first"
    assert len(primary.calls) == 1
    assert secondary.calls == []
    assert [a.outcome for a in result.attempts] == [AttemptOutcome.SUCCESS]


def test_failure_falls_back_without_retrying():
    primary = FakeClassifier("p1", [ProviderTransportError("quota", "p1")])
    secondary = FakeClassifier("p2", ["second"])

    result = _run(ProviderChain([primary, secondary]))

    assert result.value == "second"
    assert len(primary.calls) == 1
    assert len(secondary.calls) == 1
    assert [a.provider_id for a in result.attempts] == ["p1", "p2"]
    assert [a.outcome for a in result.attempts] == [
        AttemptOutcome.TRANSPORT_ERROR,
        AttemptOutcome.SUCCESS,
    ]
    assert result.attempts[0].error == "quota"


def test_parse_errors_are_recorded_separately():
    primary = FakeClassifier("p1", [ParseError("not json", "p1")])
    secondary = FakeClassifier("p2", ["ok"])

    result = _run(ProviderChain([primary, secondary]))

    assert result.attempts[0].outcome == AttemptOutcome.PARSE_ERROR


def test_unexpected_exceptions_also_fall_back():
    primary = FakeClassifier("p1", [KeyError("boom")])
    secondary = FakeClassifier("p2", ["ok"])

    result = _run(ProviderChain([primary, secondary]))

    assert result.value == "ok"
    assert result.attempts[0].outcome == AttemptOutcome.TRANSPORT_ERROR


def test_timeout_moves_to_next_provider():
    slow = FakeClassifier("slow", ["late"], delay=1.0)
    fast = FakeClassifier("fast", ["on time"])

    result = _run(ProviderChain([slow, fast], timeout_seconds=0.05))

    assert result.value == "on time"
    assert result.attempts[0].provider_id == "slow"
    assert result.attempts[0].outcome == AttemptOutcome.TRANSPORT_ERROR
    assert result.attempts[0].latency_ms < 1000


@pytest.mark.parametrize("timeout", [0, -1])
def test_non_positive_timeout_is_rejected(timeout):
    with pytest.raises(ValueError):
        ProviderChain([FakeClassifier("p1", ["ok"])], timeout_seconds=timeout)


def test_all_providers_failing_returns_no_value():
    chain = ProviderChain(
        [
            FakeClassifier("p1", [ProviderTransportError("down", "p1")]),
            FakeClassifier("p2", [ParseError("garbage", "p2")]),
        ]
    )

    result = _run(chain)

    assert not result.succeeded
    assert result.value is None
    assert len(result.attempts) == 2


def test_empty_chain():
    chain = ProviderChain([])
    result = _run(chain)

    assert len(chain) == 0
    assert chain.provider_ids == []
    assert result.value is None
    assert result.attempts == []
