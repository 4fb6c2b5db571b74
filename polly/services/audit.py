from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Callable

from starlette.requests import Request

from polly.core.config import get_settings
from polly.domain.entities import AuditEntry


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password", "cookie"]
_REDACTED_VALUE = "[REDACTED]"

ACTION_AUTHORIZATION_DENIED = "authorization_denied"
ACTION_POLL_CREATED = "poll_created"
ACTION_POLL_UPDATED = "poll_updated"
ACTION_POLL_DELETED = "poll_deleted"
ACTION_VOTE_CAST = "vote_cast"
ACTION_ROLE_GRANTED = "role_granted"
ACTION_ROLE_REVOKED = "role_revoked"
ACTION_RATE_LIMITED = "rate_limited"
ACTION_ORIGIN_REJECTED = "origin_rejected"

RequestContext = dict[str, str | None]


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(item) for item in value]
    return value


def empty_request_context() -> RequestContext:
    return {"request_id": None, "ip_address": None, "user_agent": None}


def get_request_context(request: Request | None) -> RequestContext:
    # Extract request identifiers and client hints without persisting credentials.
    if request is None:
        return empty_request_context()
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    return {"request_id": request_id, "ip_address": ip_address, "user_agent": user_agent}


class AuditRecorder:
    """Append-only writer for audit records.

    Writes are best effort: each append is bounded by ``timeout_ms``, and a
    failed or expired append is reported on the operational log at ``error``
    level and never propagates to the caller. Records are never updated or
    deleted through this class.
    """

    def __init__(
        self,
        store,
        *,
        clock: Callable[[], datetime] | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utc_now
        resolved_timeout = (
            timeout_ms if timeout_ms is not None else get_settings().audit_write_timeout_ms
        )
        self._timeout_s = max(resolved_timeout, 1) / 1000.0

    async def list_records(
        self, *, action: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[AuditEntry]:
        # Read path for admin views; storage failures propagate as StorageError.
        return await self._store.list_audit_records(action=action, offset=offset, limit=limit)

    async def record(
        self,
        actor_id: str | None,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        detail: dict[str, Any] | None = None,
        *,
        request_ctx: RequestContext | None = None,
    ) -> None:
        ctx = request_ctx or empty_request_context()
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            detail=sanitize_metadata(detail or {}),
            request_id=ctx.get("request_id"),
            ip_address=ctx.get("ip_address"),
            user_agent=ctx.get("user_agent"),
            created_at=self._clock(),
        )
        try:
            await asyncio.wait_for(self._store.append_audit_record(entry), timeout=self._timeout_s)
        except Exception as exc:  # noqa: BLE001
            # Audit failures are reported on the operational log and never reach the caller.
            logger.error(
                "audit_record_write_failed action=%s resource_type=%s request_id=%s",
                action,
                resource_type,
                entry.request_id,
                exc_info=exc,
            )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
