# tests/test_llm_client.py
import asyncio
import types

import pytest
import requests

from paintplan import llm_client as lc
from paintplan.config import Settings
from paintplan.errors import is_rate_limit_error


# ── Dummies ───────────────────────────────────────────────────────────────────
class DummyResponse:
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data if json_data is not None else {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error: Too Many Requests")

    def json(self):
        return self._json


class DummySession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, json, timeout):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        return self.response


class FakeModels:
    """Stands in for genai.Client().aio.models."""

    def __init__(self, outcomes):
        self.outcomes = dict(outcomes)
        self.tried = []

    async def generate_content(self, model, contents, config):
        self.tried.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes[model]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _gemini_response(text, finish="STOP"):
    return types.SimpleNamespace(
        text=text,
        candidates=[types.SimpleNamespace(finish_reason=types.SimpleNamespace(name=finish))],
    )


def _fake_genai(outcomes):
    models = FakeModels(outcomes)
    return types.SimpleNamespace(aio=types.SimpleNamespace(models=models)), models


def _ok(content="{}", finish="stop"):
    return DummyResponse(json_data={"choices": [{"message": {"content": content}, "finish_reason": finish}]})


# ── Local server ──────────────────────────────────────────────────────────────
def test_local_text_completion_payload():
    session = DummySession(_ok('{"a": 1}'))
    client = lc.LocalLLMClient("http://localhost:1234/v1/", model="local-model", timeout=30, session=session)
    reply = asyncio.run(client.complete_text("oi", lc.CompletionOptions(temperature=0.2, max_output_tokens=100)))

    assert reply == '{"a": 1}'
    sent = session.requests[0]
    assert sent["url"] == "http://localhost:1234/v1/chat/completions"
    assert sent["timeout"] == 30
    payload = sent["json"]
    assert payload["model"] == "local-model"
    assert payload["max_tokens"] == 100
    assert payload["temperature"] == 0.2
    assert payload["top_p"] == 0.9
    assert payload["repeat_penalty"] == 1.1
    assert payload["messages"][0] == {"role": "system", "content": lc.JSON_SYSTEM_PROMPT}
    assert payload["messages"][-1] == {"role": "user", "content": "oi"}


def test_local_plain_text_has_no_system_prompt():
    session = DummySession(_ok("#FFFFFF"))
    client = lc.LocalLLMClient("http://x/v1", session=session)
    asyncio.run(client.complete_text("hex?", lc.CompletionOptions(json_mode=False)))
    assert [m["role"] for m in session.requests[0]["json"]["messages"]] == ["user"]


def test_local_vision_sends_data_url():
    session = DummySession(_ok())
    client = lc.LocalLLMClient("http://x/v1", session=session)
    asyncio.run(client.complete_vision("descreva", b"\xff\xd8jpeg", "image/jpeg", lc.CompletionOptions()))

    content = session.requests[0]["json"]["messages"][-1]["content"]
    assert content[0]["type"] == "image_url"
    assert content[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert content[1] == {"type": "text", "text": "descreva"}


def test_local_truncated_reply_is_still_returned():
    session = DummySession(_ok('{"steps": [', finish="length"))
    client = lc.LocalLLMClient("http://x/v1", session=session)
    assert asyncio.run(client.complete_text("p", lc.CompletionOptions())) == '{"steps": ['


def test_local_empty_choices_raise():
    session = DummySession(DummyResponse(json_data={"choices": []}))
    client = lc.LocalLLMClient("http://x/v1", session=session)
    with pytest.raises(ValueError):
        asyncio.run(client.complete_text("p", lc.CompletionOptions()))


def test_local_http_429_propagates_as_rate_limit():
    session = DummySession(DummyResponse(status_code=429))
    client = lc.LocalLLMClient("http://x/v1", session=session)
    with pytest.raises(requests.HTTPError) as exc:
        asyncio.run(client.complete_text("p", lc.CompletionOptions()))
    assert is_rate_limit_error(exc.value)


# ── Gemini ────────────────────────────────────────────────────────────────────
def test_gemini_moves_to_next_model_on_rate_limit():
    fake, models = _fake_genai({
        "model-a": Exception("429 RESOURCE_EXHAUSTED"),
        "model-b": _gemini_response('{"ok": true}'),
    })
    client = lc.GeminiClient(models=["model-a", "model-b"], client=fake)
    reply = asyncio.run(client.complete_text("p", lc.CompletionOptions(max_output_tokens=64)))

    assert reply == '{"ok": true}'
    assert [t["model"] for t in models.tried] == ["model-a", "model-b"]
    config = models.tried[-1]["config"]
    assert config.response_mime_type == "application/json"
    assert config.max_output_tokens == 64


def test_gemini_other_errors_propagate_immediately():
    fake, models = _fake_genai({
        "model-a": RuntimeError("500 INTERNAL"),
        "model-b": _gemini_response("{}"),
    })
    client = lc.GeminiClient(models=["model-a", "model-b"], client=fake)
    with pytest.raises(RuntimeError):
        asyncio.run(client.complete_text("p", lc.CompletionOptions()))
    assert len(models.tried) == 1


def test_gemini_all_models_rate_limited_reraises():
    fake, _ = _fake_genai({"model-a": Exception("429 RESOURCE_EXHAUSTED")})
    client = lc.GeminiClient(models=["model-a"], client=fake)
    with pytest.raises(Exception) as exc:
        asyncio.run(client.complete_text("p", lc.CompletionOptions()))
    assert is_rate_limit_error(exc.value)


def test_gemini_without_models_is_rejected(monkeypatch):
    monkeypatch.setattr(lc, "GEMINI_MODELS", [])
    fake, _ = _fake_genai({})
    with pytest.raises(ValueError, match="PAINTPLAN_GEMINI_MODELS"):
        lc.GeminiClient(client=fake)


def test_gemini_plain_text_and_empty_reply():
    fake, models = _fake_genai({"model-a": _gemini_response(None, finish="MAX_TOKENS")})
    client = lc.GeminiClient(models=["model-a"], client=fake)
    reply = asyncio.run(client.complete_text("p", lc.CompletionOptions(json_mode=False)))
    assert reply == ""
    assert models.tried[0]["config"].response_mime_type is None


def test_gemini_vision_sends_image_then_prompt():
    fake, models = _fake_genai({"model-a": _gemini_response("{}")})
    client = lc.GeminiClient(models=["model-a"], client=fake)
    asyncio.run(client.complete_vision("descreva", b"img", "image/png", lc.CompletionOptions()))
    contents = models.tried[0]["contents"]
    assert len(contents) == 2
    assert contents[0].inline_data.mime_type == "image/png"
    assert contents[1].text == "descreva"


# ── Backend selection ─────────────────────────────────────────────────────────
def test_build_local_client():
    client = lc.build_llm_client(Settings(provider="local", local_endpoint="http://127.0.0.1:8080/v1"))
    assert isinstance(client, lc.LocalLLMClient)
    assert client.url == "http://127.0.0.1:8080/v1/chat/completions"
    assert client.profile is lc.LOCAL_PROFILE


def test_build_gemini_client(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    client = lc.build_llm_client(Settings(provider="gemini"))
    assert isinstance(client, lc.GeminiClient)
    assert client.profile is lc.GEMINI_PROFILE
