from __future__ import annotations

from dataclasses import dataclass
import logging

from polly.core.config import ADMIN_ROLE
from polly.core.errors import AuthenticationRequiredError, AuthorizationError
from polly.domain.entities import PollRecord
from polly.domain.principal import Principal
from polly.services.audit import ACTION_AUTHORIZATION_DENIED, AuditRecorder, RequestContext
from polly.services.roles import RoleStoreAccessor


logger = logging.getLogger(__name__)

OP_CREATE_POLL = "create_poll"
OP_EDIT_POLL = "edit_poll"
OP_DELETE_POLL = "delete_poll"
OP_VIEW_ADMIN_DATA = "view_admin_data"
OP_MANAGE_ROLES = "manage_roles"

REASON_OWNER = "owner"
REASON_ADMIN = "admin_role"
REASON_AUTHENTICATED = "authenticated"
REASON_ANONYMOUS = "anonymous"
REASON_NOT_OWNER = "not_owner_and_not_admin"
REASON_NOT_ADMIN = "admin_role_required"


@dataclass(frozen=True)
class AuthzDecision:
    # Explicit allow/deny with a reason meant for audit and logs, never for end users.
    allowed: bool
    reason: str
    operation: str

    @classmethod
    def allow(cls, operation: str, reason: str) -> "AuthzDecision":
        return cls(allowed=True, reason=reason, operation=operation)

    @classmethod
    def deny(cls, operation: str, reason: str) -> "AuthzDecision":
        return cls(allowed=False, reason=reason, operation=operation)


def denial_error(decision: AuthzDecision) -> AuthorizationError:
    # Anonymous callers are asked to sign in; everyone else gets the generic denial.
    if decision.reason == REASON_ANONYMOUS:
        return AuthenticationRequiredError()
    return AuthorizationError()


class AuthorizationEngine:
    """Decide whether a principal may perform an operation.

    Every rule starts from deny and only an explicit match allows. Ownership
    is checked before the role lookup so owners never cost a store access.
    Role membership is re-read through :class:`RoleStoreAccessor` on every
    call. Each deny is appended to the audit trail as
    ``authorization_denied``.
    """

    def __init__(self, roles: RoleStoreAccessor, audit: AuditRecorder) -> None:
        self._roles = roles
        self._audit = audit

    async def _denied(
        self,
        principal: Principal,
        decision: AuthzDecision,
        *,
        resource_type: str,
        resource_id: str | None,
        request_ctx: RequestContext | None,
    ) -> AuthzDecision:
        logger.info(
            "authorization_denied operation=%s reason=%s principal_id=%s resource_id=%s",
            decision.operation,
            decision.reason,
            principal.subject_id,
            resource_id,
        )
        await self._audit.record(
            principal.subject_id,
            ACTION_AUTHORIZATION_DENIED,
            resource_type,
            resource_id,
            {"operation": decision.operation, "reason": decision.reason},
            request_ctx=request_ctx,
        )
        return decision

    async def _require_admin(
        self,
        principal: Principal,
        operation: str,
        *,
        resource_type: str,
        request_ctx: RequestContext | None,
    ) -> AuthzDecision:
        decision = AuthzDecision.deny(operation, REASON_ANONYMOUS)
        if principal.is_authenticated:
            if await self._roles.has_role(principal.subject_id, ADMIN_ROLE):
                return AuthzDecision.allow(operation, REASON_ADMIN)
            decision = AuthzDecision.deny(operation, REASON_NOT_ADMIN)
        return await self._denied(
            principal, decision, resource_type=resource_type, resource_id=None, request_ctx=request_ctx
        )

    async def _owner_or_admin(
        self,
        principal: Principal,
        poll: PollRecord,
        operation: str,
        *,
        request_ctx: RequestContext | None,
    ) -> AuthzDecision:
        decision = AuthzDecision.deny(operation, REASON_ANONYMOUS)
        if principal.is_authenticated:
            if principal.subject_id == poll.owner_id:
                return AuthzDecision.allow(operation, REASON_OWNER)
            if await self._roles.has_role(principal.subject_id, ADMIN_ROLE):
                return AuthzDecision.allow(operation, REASON_ADMIN)
            decision = AuthzDecision.deny(operation, REASON_NOT_OWNER)
        return await self._denied(
            principal, decision, resource_type="poll", resource_id=poll.id, request_ctx=request_ctx
        )

    async def can_create_poll(
        self, principal: Principal, *, request_ctx: RequestContext | None = None
    ) -> AuthzDecision:
        if principal.is_authenticated:
            return AuthzDecision.allow(OP_CREATE_POLL, REASON_AUTHENTICATED)
        return await self._denied(
            principal,
            AuthzDecision.deny(OP_CREATE_POLL, REASON_ANONYMOUS),
            resource_type="poll",
            resource_id=None,
            request_ctx=request_ctx,
        )

    async def can_edit_poll(
        self, principal: Principal, poll: PollRecord, *, request_ctx: RequestContext | None = None
    ) -> AuthzDecision:
        return await self._owner_or_admin(principal, poll, OP_EDIT_POLL, request_ctx=request_ctx)

    async def can_delete_poll(
        self, principal: Principal, poll: PollRecord, *, request_ctx: RequestContext | None = None
    ) -> AuthzDecision:
        return await self._owner_or_admin(principal, poll, OP_DELETE_POLL, request_ctx=request_ctx)

    async def can_view_admin_data(
        self, principal: Principal, *, request_ctx: RequestContext | None = None
    ) -> AuthzDecision:
        return await self._require_admin(
            principal, OP_VIEW_ADMIN_DATA, resource_type="admin", request_ctx=request_ctx
        )

    async def can_manage_roles(
        self, principal: Principal, *, request_ctx: RequestContext | None = None
    ) -> AuthzDecision:
        return await self._require_admin(
            principal, OP_MANAGE_ROLES, resource_type="role", request_ctx=request_ctx
        )
