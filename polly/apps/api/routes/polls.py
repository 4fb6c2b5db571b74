from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from polly.apps.api.deps import get_principal, get_request_ctx, get_services
from polly.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from polly.apps.api.response import result_response
from polly.domain.principal import Principal
from polly.services.audit import RequestContext
from polly.services.registry import Services


router = APIRouter(prefix="/polls", tags=["polls"], responses=DEFAULT_ERROR_RESPONSES)


class PollInput(BaseModel):
    # Raw text is accepted here; length and content rules run in the validator.
    question: str | None = None
    options: list[str] = Field(default_factory=list)


class VoteInput(BaseModel):
    # Any JSON value is accepted so the coordinator owns the option-index rules.
    option_index: Any = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_poll(
    payload: PollInput,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.polls.create_poll(
        principal, payload.question, payload.options, request_ctx=request_ctx
    )
    return result_response(request, result)


@router.get("")
async def list_my_polls(
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
) -> dict:
    return result_response(request, await services.polls.list_user_polls(principal))


@router.get("/{poll_id}")
async def get_poll(
    poll_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> dict:
    return result_response(request, await services.polls.get_poll(poll_id))


@router.patch("/{poll_id}")
async def update_poll(
    poll_id: str,
    payload: PollInput,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.polls.update_poll(
        principal, poll_id, payload.question, payload.options, request_ctx=request_ctx
    )
    return result_response(request, result)


@router.delete("/{poll_id}")
async def delete_poll(
    poll_id: str,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.polls.delete_poll(principal, poll_id, request_ctx=request_ctx)
    return result_response(request, result)


@router.post("/{poll_id}/votes", status_code=status.HTTP_201_CREATED)
async def submit_vote(
    poll_id: str,
    payload: VoteInput,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.votes.submit_vote(
        principal, poll_id, payload.option_index, request_ctx=request_ctx
    )
    return result_response(request, result)


@router.get("/{poll_id}/results")
async def get_poll_results(
    poll_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> dict:
    return result_response(request, await services.polls.get_poll_results(poll_id))
