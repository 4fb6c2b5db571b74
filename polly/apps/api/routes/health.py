from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from polly.apps.api.deps import get_services
from polly.apps.api.response import SuccessEnvelope, success_response
from polly.persistence.store import describe_store
from polly.services.registry import Services

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    store: str
    rate_limit_keys: int


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request, services: Services = Depends(get_services)) -> dict:
    payload = HealthResponse(
        status="ok",
        store=describe_store(services.store),
        rate_limit_keys=services.rate_limiter.tracked_keys(),
    )
    return success_response(request=request, data=payload)
