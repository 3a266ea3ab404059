from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from typing import Callable

from llm_call_guard.core.config import Settings
from llm_call_guard.services.llm_client import ChatResult, LlmClient
from llm_call_guard.services.rate_limiter import SlidingWindowRateLimiter
from llm_call_guard.services.retry import RetryPolicy
from llm_call_guard.services.sanitize import strip_suspicious_substrings, validate_prompt

logger = logging.getLogger(__name__)


class LlmRateLimitExceeded(Exception):
    pass


class LlmGateway:
    """
    Guards upstream LLM calls for one serving component.

    Strategy:
    - Prompt is validated (length) and optionally passed through the denylist filter.
    - One limiter admission per request, keyed by caller identity.
    - The upstream call runs under the retry policy; transient failures back off
      exponentially, anything else propagates immediately.
    """

    def __init__(
            self,
            settings: Settings,
            *,
            limiter: SlidingWindowRateLimiter | None = None,
            retry_policy: RetryPolicy | None = None,
            client_factory: Callable[[], LlmClient] = LlmClient,
    ) -> None:
        self._settings = settings
        self.limiter = limiter or SlidingWindowRateLimiter(
            max_calls=settings.rl_max_calls,
            window_s=settings.rl_window_s,
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._client_factory = client_factory

    def prepare_prompt(self, prompt: str) -> str:
        text = validate_prompt(prompt, self._settings.prompt_max_chars)
        if self._settings.sanitize_prompts:
            text = validate_prompt(strip_suspicious_substrings(text), self._settings.prompt_max_chars)
        return text

    def complete(
            self,
            identity: Hashable,
            prompt: str,
            *,
            model: str | None = None,
            cancel_event: threading.Event | None = None,
    ) -> ChatResult:
        text = self.prepare_prompt(prompt)
        client = self._client_factory()

        if not self.limiter.is_allowed(identity):
            logger.warning(
                "LLM rate limit exceeded identity=%s max_calls=%s window_s=%s",
                identity,
                self.limiter.max_calls,
                self.limiter.window_s,
            )
            raise LlmRateLimitExceeded("LLM rate limit exceeded")

        result = self.retry_policy.call(
            lambda: client.chat(text, model=model),
            cancel_event=cancel_event,
        )

        logger.info(
            "LLM completion identity=%s model=%s finish_reason=%s",
            identity,
            result.model,
            result.finish_reason,
        )
        return result
