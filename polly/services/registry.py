from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from polly.core.config import Settings, get_settings
from polly.services.admin import AdminService
from polly.services.audit import AuditRecorder
from polly.services.authz import AuthorizationEngine
from polly.services.identity import IdentityResolver
from polly.services.polls import PollService
from polly.services.rate_limit import RateLimiter
from polly.services.roles import RoleStoreAccessor
from polly.services.votes import VoteCoordinator


@dataclass
class Services:
    # Wired component graph shared by the HTTP layer for the lifetime of an app.
    settings: Settings
    store: object
    identity: IdentityResolver
    rate_limiter: RateLimiter
    roles: RoleStoreAccessor
    audit: AuditRecorder
    authz: AuthorizationEngine
    polls: PollService
    votes: VoteCoordinator
    admin: AdminService


def build_services(
    settings: Settings | None = None,
    *,
    store=None,
    rate_limiter: RateLimiter | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    resolved = settings or get_settings()
    if store is None:
        from polly.persistence.store import SqlPollStore

        store = SqlPollStore(timeout_ms=resolved.store_timeout_ms)
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            window_ms=resolved.rate_limit_window_ms,
            max_requests=resolved.rate_limit_max_requests,
        )
    audit = AuditRecorder(store, clock=clock, timeout_ms=resolved.audit_write_timeout_ms)
    roles = RoleStoreAccessor(store, timeout_ms=resolved.store_timeout_ms)
    authz = AuthorizationEngine(roles, audit)
    return Services(
        settings=resolved,
        store=store,
        identity=IdentityResolver(resolved),
        rate_limiter=rate_limiter,
        roles=roles,
        audit=audit,
        authz=authz,
        polls=PollService(store, authz, audit, clock=clock),
        votes=VoteCoordinator(store, audit, settings=resolved, clock=clock),
        admin=AdminService(store, authz, audit, settings=resolved, clock=clock),
    )
