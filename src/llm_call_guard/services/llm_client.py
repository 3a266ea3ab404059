from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from llm_call_guard.core.config import get_settings
from llm_call_guard.services.retry import RetryableError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class LlmTransientError(RetryableError):
    pass


@dataclass(frozen=True)
class ChatResult:
    content: str
    model: str
    finish_reason: str | None
    usage: dict[str, Any]
    raw: dict[str, Any]


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a numeric Retry-After header. HTTP-date values are ignored.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def parse_chat_payload(payload: Any) -> ChatResult:
    if not isinstance(payload, dict):
        raise ValueError("LLM returned unexpected payload type")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ValueError("LLM response has no choices")

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise ValueError("LLM response has no message content")

    finish_reason = first.get("finish_reason")
    usage = payload.get("usage") if isinstance(payload.get("usage"), dict) else {}

    return ChatResult(
        content=content,
        model=str(payload.get("model", "")),
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        usage=usage,
        raw=payload,
    )


class LlmClient:
    """
    Thin client for an OpenAI-compatible chat completions endpoint.

    Transient failures (429, 5xx gateway errors, transport errors) are raised
    as LlmTransientError; everything else propagates unchanged.
    """

    def __init__(self) -> None:
        settings = get_settings()

        if not settings.llm_api_key:
            raise RuntimeError("LLM_API_KEY is not set.")

        self._base_url = settings.llm_base_url.rstrip("/")
        self._default_model = settings.llm_default_model
        self._timeout = httpx.Timeout(
            settings.read_timeout_s,
            connect=settings.connect_timeout_s,
        )
        self._headers = {
            "Authorization": f"Bearer {settings.llm_api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def chat(self, prompt: str, *, model: str | None = None) -> ChatResult:
        url = f"{self._base_url}/chat/completions"
        body = {
            "model": model or self._default_model,
            "messages": [{"role": "user", "content": prompt}],
        }

        # Prompt text is not logged
        logger.info("LLM request: %s model=%s prompt_chars=%d", url, body["model"], len(prompt))

        try:
            with httpx.Client(headers=self._headers, timeout=self._timeout, follow_redirects=True) as client:
                resp = client.post(url, json=body)
        except httpx.TransportError as exc:
            raise LlmTransientError(f"LLM transport error: {type(exc).__name__}") from exc

        logger.info("LLM response: status=%s", resp.status_code)

        if resp.status_code in TRANSIENT_STATUS_CODES:
            retry_after_s = parse_retry_after(resp.headers.get("Retry-After"))
            raise LlmTransientError(
                f"LLM transient status {resp.status_code}",
                retry_after_s=retry_after_s,
            )

        resp.raise_for_status()

        return parse_chat_payload(resp.json())
