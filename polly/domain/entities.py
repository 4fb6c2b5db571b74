from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


# Backend-agnostic values exchanged between services and PollStore implementations.


@dataclass(frozen=True)
class PollRecord:
    id: str
    owner_id: str
    question: str
    options: tuple[str, ...]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "question": self.question,
            "options": list(self.options),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class VoteRecord:
    id: str
    poll_id: str
    voter_id: str | None
    option_index: int
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class RoleAssignment:
    principal_id: str
    role: str
    granted_by: str | None
    granted_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "principal_id": self.principal_id,
            "role": self.role,
            "granted_by": self.granted_by,
            "granted_at": self.granted_at.isoformat(),
        }


@dataclass(frozen=True)
class AuditEntry:
    actor_id: str | None
    action: str
    resource_type: str
    resource_id: str | None
    created_at: datetime
    detail: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    # Assigned by the store on append.
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "detail": self.detail,
            "request_id": self.request_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat(),
        }
