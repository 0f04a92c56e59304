import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from chatrouter.clients.backend import BackendClient
from chatrouter.clients.factory import build_classifiers
from chatrouter.clients.gemini import GeminiClassifier
from chatrouter.clients.openai_classifier import OpenAIClassifier
from chatrouter.core.config import Settings
from chatrouter.errors import ParseError, ProviderMisconfiguredError, ProviderTransportError
from chatrouter.handlers import BackendActionHandler, BackendUserDirectory
from chatrouter.schemas.decision import Action
from chatrouter.schemas.inbound import Language
from tests.fakes import context


def _settings(**overrides):
    values = dict(
        gemini_api_key="gemini-key",
        openai_api_key=None,
        azure_openai_endpoint=None,
        azure_openai_api_key=None,
        azure_openai_deployment=None,
    )
    values.update(overrides)
    return Settings(**values)


def _gemini(handler):
    return GeminiClassifier(config=_settings(), transport=httpx.MockTransport(handler))


def test_gemini_posts_generate_content_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": '{"action": "HELP"}'}]}}]},
        )

    classifier = _gemini(handler)
    text = asyncio.run(classifier.classify("system prompt", "user prompt", context()))

    assert text == '{"action": "HELP"}'
    request = seen[0]
    assert request.url.path.endswith("/models/gemini-2.0-flash:generateContent")
    assert request.url.params["key"] == "gemini-key"
    body = json.loads(request.content)
    assert body["systemInstruction"]["parts"][0]["text"] == "system prompt"
    assert body["contents"][0]["parts"][0]["text"] == "user prompt"
    assert body["generationConfig"]["responseMimeType"] == "application/json"


def test_gemini_http_error_is_a_transport_error():
    classifier = _gemini(lambda request: httpx.Response(429, json={"error": "quota"}))
    with pytest.raises(ProviderTransportError):
        asyncio.run(classifier.classify("s", "u", context()))


def test_gemini_without_candidates_is_a_parse_error():
    classifier = _gemini(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(ParseError):
        asyncio.run(classifier.classify("s", "u", context()))


def test_gemini_requires_api_key():
    with pytest.raises(ProviderMisconfiguredError):
        GeminiClassifier(config=_settings(gemini_api_key=None))


def _completion(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


class _FakeCompletions:
    def __init__(self, result):
        self.result = result
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return self.result


def test_openai_classifier_requests_json_object():
    completions = _FakeCompletions(_completion(' {"action": "CHAT"} '))
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    classifier = OpenAIClassifier(config=_settings(openai_model="gpt-test"), client=client)

    text = asyncio.run(classifier.classify("system", "user", context()))

    assert text == '{"action": "CHAT"}'
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["response_format"] == {"type": "json_object"}
    assert completions.kwargs["messages"][0] == {"role": "system", "content": "system"}


def test_openai_without_choices_is_a_parse_error():
    client = SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(SimpleNamespace(choices=[]))))
    classifier = OpenAIClassifier(config=_settings(), client=client)
    with pytest.raises(ParseError):
        asyncio.run(classifier.classify("s", "u", context()))


def test_openai_requires_credentials():
    with pytest.raises(ProviderMisconfiguredError):
        OpenAIClassifier(config=_settings())
    with pytest.raises(ProviderMisconfiguredError):
        OpenAIClassifier(config=_settings(azure_openai_endpoint="https://example.openai.azure.com"))


def test_build_classifiers_skips_unknown_and_unconfigured_providers():
    classifiers = build_classifiers(
        _settings(classifier_providers=["openai", "bogus", "gemini"])
    )
    assert [c.provider_id for c in classifiers] == ["gemini"]


def test_build_classifiers_keeps_configured_order():
    classifiers = build_classifiers(
        _settings(classifier_providers=["openai", "gemini"], openai_api_key="sk-test")
    )
    assert [c.provider_id for c in classifiers] == ["openai", "gemini"]


def _backend(handler):
    return BackendClient(base_url="http://backend.test", transport=httpx.MockTransport(handler))


def test_action_handler_posts_to_backend():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    client = _backend(handler)
    asyncio.run(
        BackendActionHandler(client).handle(Action.VIEW_STATS, {"text": "stats"}, context())
    )

    assert seen[0].url.path == "/actions/view_stats"
    body = json.loads(seen[0].content)
    assert body["kind"] == "action"
    assert body["target"] == "VIEW_STATS"
    assert body["payload"] == {"text": "stats"}
    assert body["context"]["user_id"] == "u1"


def test_backend_error_status_propagates_to_dispatcher():
    client = _backend(lambda request: httpx.Response(500))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.post_event("/conversation", {}))


def test_user_directory_reads_stored_language():
    client = _backend(lambda request: httpx.Response(200, json={"language": "zh-TW"}))
    assert asyncio.run(BackendUserDirectory(client).get_language("u1")) == Language.ZH_TRADITIONAL


def test_user_directory_defaults_to_english():
    missing = _backend(lambda request: httpx.Response(404))
    assert asyncio.run(BackendUserDirectory(missing).get_language("u1")) == Language.EN

    unexpected = _backend(lambda request: httpx.Response(200, json={"language": "fr"}))
    assert asyncio.run(BackendUserDirectory(unexpected).get_language("u1")) == Language.EN


def test_backend_client_requires_base_url(monkeypatch):
    monkeypatch.setattr("chatrouter.clients.backend.settings.backend_api_base_url", None)
    with pytest.raises(ValueError):
        BackendClient()
