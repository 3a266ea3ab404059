import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, TypeVar

T = TypeVar("T")

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env(name: str, default: T, parse: Callable[[str], T]) -> T:
    """
    Read name from the environment; unset or blank values fall back to default.
    """
    raw = os.getenv(name, "").strip()
    return parse(raw) if raw else default


def _parse_bool(raw: str) -> bool:
    return raw.lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    llm_base_url: str
    llm_api_key: str
    llm_default_model: str
    connect_timeout_s: float
    read_timeout_s: float
    rl_max_calls: int
    rl_window_s: float
    retry_max_retries: int
    retry_base_delay_s: float
    retry_deadline_s: float
    prompt_max_chars: int
    sanitize_prompts: bool


@lru_cache
def get_settings() -> Settings:
    return Settings(
        llm_base_url=_env("LLM_BASE_URL", "https://api.openai.com/v1", str),
        llm_api_key=_env("LLM_API_KEY", "", str),
        llm_default_model=_env("LLM_DEFAULT_MODEL", "gpt-4o-mini", str),
        connect_timeout_s=_env("HTTP_CONNECT_TIMEOUT_S", 5.0, float),
        read_timeout_s=_env("HTTP_READ_TIMEOUT_S", 60.0, float),
        rl_max_calls=_env("RL_MAX_CALLS", 10, int),
        rl_window_s=_env("RL_WINDOW_S", 60.0, float),
        retry_max_retries=_env("RETRY_MAX_RETRIES", 3, int),
        retry_base_delay_s=_env("RETRY_BASE_DELAY_S", 1.0, float),
        # 0 disables the total deadline
        retry_deadline_s=_env("RETRY_DEADLINE_S", 0.0, float),
        prompt_max_chars=_env("PROMPT_MAX_CHARS", 8000, int),
        sanitize_prompts=_env("SANITIZE_PROMPTS", False, _parse_bool),
    )
