import json

import pytest
import requests
from pydantic import BaseModel

from branchops.core.ai.gateway import JSON_RETRY_SUFFIX, AIGatewayService
from branchops.core.ai.models import (
    AIGatewayNotConfiguredError,
    AIGatewayRequest,
    AIOutputValidationError,
    AIUpstreamError,
)
from branchops.core.ai.openai_client import OpenAIChatClient


class _StubClient:
    def __init__(self, responses, *, prompt_tokens=5, completion_tokens=7):
        self._responses = list(responses)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.prompts = []

    def complete(self, *, task, model, system_prompt, user_content, json_mode, temperature):
        self.prompts.append(user_content)
        content = self._responses.pop(0) if self._responses else "{}"
        return content, self.prompt_tokens, self.completion_tokens


class _Greeting(BaseModel):
    greeting: str


def _req(**kw):
    base = dict(task="notification_compose", system_prompt="json", user_content="hello", json_mode=True)
    base.update(kw)
    return AIGatewayRequest(**base)


def test_json_retry_sums_tokens():
    stub = _StubClient(["not-json", json.dumps({"ok": True})])
    svc = AIGatewayService(client=stub, require_api_key=False)

    out = svc.complete(_req())
    assert out.content == json.dumps({"ok": True})
    assert (out.prompt_tokens, out.completion_tokens) == (10, 14)
    assert out.model == "gpt-4o-mini"
    assert stub.prompts[1] == f"hello\n\n{JSON_RETRY_SUFFIX}"


def test_json_invalid_twice_raises():
    svc = AIGatewayService(client=_StubClient(["nope", "still nope"]), require_api_key=False)
    with pytest.raises(AIOutputValidationError) as exc:
        svc.complete(_req())
    assert exc.value.raw_output == "still nope"


def test_plain_text_mode_skips_json_checks():
    stub = _StubClient(["just words"])
    out = AIGatewayService(client=stub, require_api_key=False).complete(_req(json_mode=False))
    assert out.content == "just words"
    assert len(stub.prompts) == 1


def test_complete_json_strips_fences_and_validates_schema():
    svc = AIGatewayService(client=_StubClient(['```json\n{"greeting": "hi", "extra": 1}\n```']), require_api_key=False)
    assert svc.complete_json(_req(json_mode=False), _Greeting) == {"greeting": "hi"}

    svc = AIGatewayService(client=_StubClient(['{"greeting": "hi"}']), require_api_key=False)
    assert svc.complete_json(_req()) == {"greeting": "hi"}

    svc = AIGatewayService(client=_StubClient(['{"salutation": "hi"}']), require_api_key=False)
    with pytest.raises(AIOutputValidationError) as exc:
        svc.complete_json(_req(), _Greeting)
    assert "greeting" in exc.value.validation_error


def test_json_array_is_not_an_object():
    svc = AIGatewayService(client=_StubClient(["[1, 2]", "[3]"]), require_api_key=False)
    with pytest.raises(AIOutputValidationError, match="expected a JSON object"):
        svc.complete(_req())


def test_api_key_required(monkeypatch):
    stub = _StubClient(['{"greeting": "hi"}'])
    svc = AIGatewayService(client=stub)
    with pytest.raises(AIGatewayNotConfiguredError):
        svc.complete(_req())
    assert stub.prompts == []

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert svc.complete_json(_req(), _Greeting) == {"greeting": "hi"}


class _FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _complete(client, json_mode=True):
    return client.complete(
        task="quality_analysis",
        model="gpt-4o",
        system_prompt="sys",
        user_content="data",
        json_mode=json_mode,
        temperature=0.7,
    )


def test_openai_client_request_and_response():
    payload = {
        "choices": [{"message": {"content": '{"summary": "ok"}'}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 30},
    }
    session = _FakeSession(_FakeResponse(200, payload))
    client = OpenAIChatClient(api_key="sk-test", base_url="https://llm.example.com/v1/", session=session)

    assert _complete(client) == ('{"summary": "ok"}', 120, 30)
    call = session.calls[0]
    assert call["url"] == "https://llm.example.com/v1/chat/completions"
    assert call["headers"] == {"Authorization": "Bearer sk-test"}
    assert call["json"]["response_format"] == {"type": "json_object"}
    assert call["json"]["messages"][0] == {"role": "system", "content": "sys"}
    assert call["json"]["temperature"] == 0.7

    _complete(client, json_mode=False)
    assert "response_format" not in session.calls[1]["json"]


def test_openai_client_errors(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(AIGatewayNotConfiguredError):
        _complete(OpenAIChatClient(session=_FakeSession()))

    with pytest.raises(AIUpstreamError) as exc:
        _complete(OpenAIChatClient(api_key="k", session=_FakeSession(_FakeResponse(429))))
    assert exc.value.status_code == 429

    with pytest.raises(AIUpstreamError, match="no choices"):
        _complete(OpenAIChatClient(api_key="k", session=_FakeSession(_FakeResponse(200, {"choices": []}))))

    html = _FakeResponse(200, ValueError("Expecting value: line 1 column 1"))
    with pytest.raises(AIUpstreamError, match="not valid JSON"):
        _complete(OpenAIChatClient(api_key="k", session=_FakeSession(html)))

    broken = _FakeSession(error=requests.ConnectionError("connection refused"))
    with pytest.raises(AIUpstreamError, match="LLM request failed"):
        _complete(OpenAIChatClient(api_key="k", session=broken))
