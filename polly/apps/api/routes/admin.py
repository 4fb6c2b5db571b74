from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from polly.apps.api.deps import get_principal, get_request_ctx, get_services
from polly.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from polly.apps.api.response import result_response, success_response
from polly.domain.principal import Principal
from polly.services.audit import RequestContext
from polly.services.registry import Services


router = APIRouter(prefix="/admin", tags=["admin"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("/polls")
async def list_all_polls(
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    # Admin membership is re-checked on every fetch.
    result = await services.admin.list_all_polls_for_admin(principal, request_ctx=request_ctx)
    return result_response(request, result)


@router.get("/audit/records")
async def list_audit_records(
    request: Request,
    action: str | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.admin.list_audit_records(
        principal, action=action, offset=offset, limit=limit, request_ctx=request_ctx
    )
    if not result.ok:
        return result_response(request, result)
    items = result.data or []
    # Offer a next offset only when a full page was returned.
    page_size = limit or services.settings.audit_list_default_limit
    page_size = min(page_size, services.settings.audit_list_max_limit)
    next_offset = offset + len(items) if len(items) == page_size else None
    return success_response(request=request, data={"items": items, "next_offset": next_offset})


@router.put("/roles/{principal_id}/{role}")
async def grant_role(
    principal_id: str,
    role: str,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.admin.grant_role(principal, principal_id, role, request_ctx=request_ctx)
    return result_response(request, result)


@router.delete("/roles/{principal_id}/{role}")
async def revoke_role(
    principal_id: str,
    role: str,
    request: Request,
    services: Services = Depends(get_services),
    principal: Principal = Depends(get_principal),
    request_ctx: RequestContext = Depends(get_request_ctx),
) -> dict:
    result = await services.admin.revoke_role(principal, principal_id, role, request_ctx=request_ctx)
    return result_response(request, result)
