import pytest
from llm_call_guard.core.config import get_settings


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch) -> None:
    """
    Ensure required environment variables are set for tests.

    LLM_API_KEY is required by LlmClient runtime checks.
    Backoff base is zero so API tests never wait in real time.
    """
    monkeypatch.setenv("LLM_API_KEY", "sk-test-key")
    monkeypatch.setenv("LLM_BASE_URL", "https://api.openai.com/v1")
    monkeypatch.setenv("RETRY_BASE_DELAY_S", "0")

    # Clear cached Settings so env changes take effect
    get_settings.cache_clear()
