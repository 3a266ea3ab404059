import json

import httpx
import pytest
import respx

from llm_call_guard.core.config import get_settings
from llm_call_guard.services.llm_client import (
    LlmClient,
    LlmTransientError,
    parse_chat_payload,
    parse_retry_after,
)
from llm_call_guard.services.retry import RetryableError

CHAT_URL = "https://api.openai.com/v1/chat/completions"


def _completion(content: str = "Hello!") -> dict:
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4o-mini",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"},
        ],
        "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
    }


@respx.mock
def test_chat_sends_bearer_and_parses_completion() -> None:
    route = respx.post(CHAT_URL).mock(return_value=httpx.Response(200, json=_completion()))

    result = LlmClient().chat("Say hello", model="gpt-4o")

    assert result.content == "Hello!"
    assert result.finish_reason == "stop"
    assert result.usage["total_tokens"] == 7

    req = route.calls[0].request
    assert req.headers["Authorization"] == "Bearer sk-test-key"
    body = json.loads(req.content)
    assert body["model"] == "gpt-4o"
    assert body["messages"] == [{"role": "user", "content": "Say hello"}]


@respx.mock
def test_chat_uses_default_model(monkeypatch) -> None:
    monkeypatch.setenv("LLM_DEFAULT_MODEL", "my-default")
    get_settings.cache_clear()
    route = respx.post(CHAT_URL).mock(return_value=httpx.Response(200, json=_completion()))

    LlmClient().chat("hi")

    body = json.loads(route.calls[0].request.content)
    assert body["model"] == "my-default"


@pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
@respx.mock
def test_transient_statuses_are_retryable(status: int) -> None:
    respx.post(CHAT_URL).mock(return_value=httpx.Response(status, headers={"Retry-After": "7"}))

    with pytest.raises(LlmTransientError) as exc_info:
        LlmClient().chat("hi")

    assert isinstance(exc_info.value, RetryableError)
    assert exc_info.value.retry_after_s == 7.0


@respx.mock
def test_transport_error_is_retryable() -> None:
    req = httpx.Request("POST", CHAT_URL)
    respx.post(CHAT_URL).mock(side_effect=httpx.ConnectError("boom", request=req))

    with pytest.raises(LlmTransientError):
        LlmClient().chat("hi")


@respx.mock
def test_client_errors_are_not_retryable() -> None:
    respx.post(CHAT_URL).mock(return_value=httpx.Response(400, json={"error": {"message": "bad"}}))

    with pytest.raises(httpx.HTTPStatusError):
        LlmClient().chat("hi")


@respx.mock
def test_invalid_json_raises_value_error() -> None:
    respx.post(CHAT_URL).mock(
        return_value=httpx.Response(200, content=b"not-json", headers={"Content-Type": "application/json"})
    )

    with pytest.raises(ValueError):
        LlmClient().chat("hi")


def test_missing_api_key_is_misconfiguration(monkeypatch) -> None:
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    get_settings.cache_clear()

    with pytest.raises(RuntimeError, match="LLM_API_KEY"):
        LlmClient()


def test_parse_chat_payload_rejects_malformed() -> None:
    with pytest.raises(ValueError):
        parse_chat_payload([])
    with pytest.raises(ValueError):
        parse_chat_payload({"choices": []})
    with pytest.raises(ValueError):
        parse_chat_payload({"choices": [{"message": {"content": None}}]})


def test_parse_retry_after() -> None:
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after(" 1.5 ") == 1.5
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after("-1") is None
    assert parse_retry_after(None) is None
