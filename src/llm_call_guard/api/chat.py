from __future__ import annotations

import logging
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from llm_call_guard.services.llm_gateway import LlmGateway, LlmRateLimitExceeded
from llm_call_guard.services.retry import RetryableError, RetryCancelled
from llm_call_guard.services.sanitize import PromptRejected

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1", tags=["chat"])


class ChatRequest(BaseModel):
    prompt: str = Field(
        ...,
        description="User prompt forwarded as a single user message.",
        json_schema_extra={"example": "Summarize the benefits of exponential backoff."},
    )
    model: str | None = Field(
        None,
        description="Upstream model name. Defaults to LLM_DEFAULT_MODEL.",
        json_schema_extra={"example": "gpt-4o-mini"},
    )


class ChatResponse(BaseModel):
    content: str
    model: str
    finish_reason: str | None = None
    usage: dict[str, Any] = Field(default_factory=dict)


def get_gateway(request: Request) -> LlmGateway:
    return request.app.state.gateway


def resolve_identity(request: Request, client_id: str | None) -> str:
    if client_id and client_id.strip():
        return client_id.strip()
    if request.client is not None:
        return request.client.host
    return "anonymous"


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Rate-limited chat completion",
    description=(
            "Forwards the prompt to the configured OpenAI-compatible upstream. "
            "Each caller identity (X-Client-Id header, else client host) is limited "
            "to RL_MAX_CALLS per RL_WINDOW_S seconds. Transient upstream failures "
            "are retried with exponential backoff."
    ),
    responses={
        422: {"description": "Validation error (empty or oversized prompt)."},
        429: {"description": "Too many requests for this caller identity."},
        500: {"description": "Service misconfiguration (e.g. LLM_API_KEY missing)."},
        502: {"description": "Upstream LLM/network error."},
    },
)
def chat(
        body: ChatRequest,
        request: Request,
        gateway: Annotated[LlmGateway, Depends(get_gateway)],
        x_client_id: Annotated[str | None, Header()] = None,
) -> ChatResponse:
    identity = resolve_identity(request, x_client_id)
    logger.info("Request /v1/chat identity=%s model=%s", identity, body.model)

    try:
        result = gateway.complete(identity, body.prompt, model=body.model)

    except PromptRejected as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    except LlmRateLimitExceeded as exc:
        raise HTTPException(status_code=429, detail="Too many requests") from exc

    except RuntimeError as exc:
        logger.exception("Service misconfiguration in /v1/chat")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    except (RetryableError, RetryCancelled, httpx.HTTPError, ValueError) as exc:
        # internal detail stays in the log
        logger.exception("LLM upstream failure in /v1/chat identity=%s", identity)
        raise HTTPException(status_code=502, detail="LLM upstream error") from exc

    except Exception:
        logger.exception("Unexpected error in /v1/chat")
        raise

    return ChatResponse(
        content=result.content,
        model=result.model,
        finish_reason=result.finish_reason,
        usage=result.usage,
    )
