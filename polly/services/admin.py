from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from typing import Any, Callable

from polly.core.config import Settings, get_settings
from polly.core.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from polly.domain.entities import RoleAssignment
from polly.domain.principal import Principal
from polly.services.audit import (
    ACTION_AUTHORIZATION_DENIED,
    ACTION_ROLE_GRANTED,
    ACTION_ROLE_REVOKED,
    AuditRecorder,
    RequestContext,
)
from polly.services.authz import AuthorizationEngine, denial_error
from polly.services.results import OperationResult, run_operation


logger = logging.getLogger(__name__)

_ROLE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,31}$")


class AdminService:
    """Admin-only views and role management.

    Admin membership is re-checked on every call, so a revoked admin loses
    access on their next request. Admins cannot grant roles to, or revoke
    roles from, themselves.
    """

    def __init__(
        self,
        store,
        authz: AuthorizationEngine,
        audit: AuditRecorder,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._authz = authz
        self._audit = audit
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _require_admin(self, principal: Principal, request_ctx: RequestContext | None) -> None:
        decision = await self._authz.can_view_admin_data(principal, request_ctx=request_ctx)
        if not decision.allowed:
            raise denial_error(decision)

    async def _require_role_manager(
        self, principal: Principal, principal_id: str, role: str, request_ctx: RequestContext | None
    ) -> None:
        decision = await self._authz.can_manage_roles(principal, request_ctx=request_ctx)
        if not decision.allowed:
            raise denial_error(decision)
        if not principal_id or not principal_id.strip():
            raise ValidationError("Principal ID is required")
        if not _ROLE_NAME_PATTERN.match(role or ""):
            raise ValidationError("Invalid role name")
        if principal_id == principal.subject_id:
            # Self-grants and self-revocations are denied and audited like any other deny.
            await self._audit.record(
                principal.subject_id,
                ACTION_AUTHORIZATION_DENIED,
                "role",
                f"{principal_id}:{role}",
                {"operation": "manage_roles", "reason": "self_assignment"},
                request_ctx=request_ctx,
            )
            raise AuthorizationError()

    async def list_all_polls_for_admin(
        self, principal: Principal, *, request_ctx: RequestContext | None = None
    ) -> OperationResult[list[dict[str, Any]]]:
        async def _list() -> list[dict[str, Any]]:
            await self._require_admin(principal, request_ctx)
            return [poll.to_dict() for poll in await self._store.list_polls()]

        return await run_operation("list_all_polls_for_admin", _list)

    async def list_audit_records(
        self,
        principal: Principal,
        *,
        action: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[list[dict[str, Any]]]:
        async def _list() -> list[dict[str, Any]]:
            await self._require_admin(principal, request_ctx)
            resolved_limit = limit if limit is not None else self._settings.audit_list_default_limit
            if offset < 0 or resolved_limit <= 0:
                raise ValidationError("offset must be >= 0 and limit must be > 0")
            resolved_limit = min(resolved_limit, self._settings.audit_list_max_limit)
            entries = await self._audit.list_records(action=action, offset=offset, limit=resolved_limit)
            return [entry.to_dict() for entry in entries]

        return await run_operation("list_audit_records", _list)

    async def grant_role(
        self,
        principal: Principal,
        principal_id: str,
        role: str,
        *,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[dict[str, Any]]:
        async def _grant() -> dict[str, Any]:
            await self._require_role_manager(principal, principal_id, role, request_ctx)
            assignment = RoleAssignment(
                principal_id=principal_id,
                role=role,
                granted_by=principal.subject_id,
                granted_at=self._clock(),
            )
            created = await self._store.insert_role(assignment)
            if created:
                await self._audit.record(
                    principal.subject_id,
                    ACTION_ROLE_GRANTED,
                    "role",
                    f"{principal_id}:{role}",
                    {"principal_id": principal_id, "role": role},
                    request_ctx=request_ctx,
                )
            return {"principal_id": principal_id, "role": role, "created": created}

        return await run_operation("grant_role", _grant)

    async def revoke_role(
        self,
        principal: Principal,
        principal_id: str,
        role: str,
        *,
        request_ctx: RequestContext | None = None,
    ) -> OperationResult[dict[str, Any]]:
        async def _revoke() -> dict[str, Any]:
            await self._require_role_manager(principal, principal_id, role, request_ctx)
            if not await self._store.delete_role(principal_id, role):
                raise NotFoundError("Role assignment not found")
            await self._audit.record(
                principal.subject_id,
                ACTION_ROLE_REVOKED,
                "role",
                f"{principal_id}:{role}",
                {"principal_id": principal_id, "role": role},
                request_ctx=request_ctx,
            )
            return {"principal_id": principal_id, "role": role, "revoked": True}

        return await run_operation("revoke_role", _revoke)
