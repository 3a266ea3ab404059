from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

router = APIRouter(tags=["service"])


class HealthResponse(BaseModel):
    status: str = Field(
        ...,
        json_schema_extra={"example": "ok"},
    )


class LimitsResponse(BaseModel):
    rl_max_calls: int = Field(..., description="Admitted calls per identity per window.")
    rl_window_s: float = Field(..., description="Sliding window length in seconds.")
    retry_max_retries: int = Field(..., description="Retries after the first attempt.")
    retry_base_delay_s: float = Field(..., description="Wait before retry i is base * 2**i.")
    retry_deadline_s: float | None = Field(None, description="Total retry budget in seconds, if any.")


@router.get("/health", response_model=HealthResponse, summary="Service health")
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/health/limits", response_model=LimitsResponse, summary="Configured limits")
def health_limits(request: Request) -> LimitsResponse:
    gateway = request.app.state.gateway
    policy = gateway.retry_policy

    return LimitsResponse(
        rl_max_calls=gateway.limiter.max_calls,
        rl_window_s=gateway.limiter.window_s,
        retry_max_retries=policy.max_retries,
        retry_base_delay_s=policy.base_delay_s,
        retry_deadline_s=policy.deadline_s,
    )
