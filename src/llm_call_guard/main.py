from fastapi import FastAPI

from llm_call_guard.api.chat import router as chat_router
from llm_call_guard.api.health import router as health_router
from llm_call_guard.core.config import get_settings
from llm_call_guard.core.logging import configure_logging
from llm_call_guard.services.llm_gateway import LlmGateway

configure_logging()


def create_app() -> FastAPI:
    app = FastAPI(
        title="LLM Call Guard",
        version="0.1.0",
        description="Rate-limited, retrying proxy for hosted LLM chat completion APIs.",
    )
    # One limiter per app instance, not per process
    app.state.gateway = LlmGateway(get_settings())

    app.include_router(health_router)
    app.include_router(chat_router)
    return app


app = create_app()
