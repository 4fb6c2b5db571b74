from __future__ import annotations

from datetime import datetime, timezone

import pytest

from polly.core.config import ADMIN_ROLE
from polly.domain.entities import PollRecord, RoleAssignment
from polly.domain.principal import Principal
from polly.persistence.memory import InMemoryPollStore
from polly.services.audit import ACTION_AUTHORIZATION_DENIED, AuditRecorder
from polly.services.authz import (
    REASON_ADMIN,
    REASON_ANONYMOUS,
    REASON_NOT_ADMIN,
    REASON_NOT_OWNER,
    REASON_OWNER,
    AuthorizationEngine,
)
from polly.services.roles import RoleStoreAccessor
from polly.tests.utils.stores import BrokenRoleStore


_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _poll(owner_id: str = "owner") -> PollRecord:
    return PollRecord(
        id="5b7c6a38-0f7f-4c59-9d9e-8cdb3a7d2f10",
        owner_id=owner_id,
        question="Best color?",
        options=("Red", "Blue"),
        created_at=_NOW,
        updated_at=_NOW,
    )


class _CountingStore(InMemoryPollStore):
    def __init__(self) -> None:
        super().__init__()
        self.role_lookups = 0

    async def get_role(self, principal_id: str, role: str) -> bool:
        self.role_lookups += 1
        return await super().get_role(principal_id, role)


def _engine(store) -> AuthorizationEngine:
    audit = AuditRecorder(store)
    return AuthorizationEngine(RoleStoreAccessor(store, timeout_ms=100), audit)


async def _grant_admin(store, principal_id: str) -> None:
    await store.insert_role(
        RoleAssignment(principal_id=principal_id, role=ADMIN_ROLE, granted_by="root", granted_at=_NOW)
    )


@pytest.mark.asyncio
async def test_create_requires_authentication() -> None:
    store = InMemoryPollStore()
    engine = _engine(store)

    assert (await engine.can_create_poll(Principal.authenticated("u1"))).allowed
    denied = await engine.can_create_poll(Principal.anonymous())
    assert not denied.allowed
    assert denied.reason == REASON_ANONYMOUS
    records = await store.list_audit_records(action=ACTION_AUTHORIZATION_DENIED)
    assert len(records) == 1


@pytest.mark.asyncio
async def test_owner_is_allowed_without_role_lookup() -> None:
    store = _CountingStore()
    engine = _engine(store)

    edit = await engine.can_edit_poll(Principal.authenticated("owner"), _poll())
    delete = await engine.can_delete_poll(Principal.authenticated("owner"), _poll())

    assert edit.allowed and edit.reason == REASON_OWNER
    assert delete.allowed and delete.reason == REASON_OWNER
    assert store.role_lookups == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("principal_id", ["intruder", "someone-else", "OWNER"])
async def test_non_owner_without_admin_is_denied_and_audited(principal_id: str) -> None:
    store = InMemoryPollStore()
    engine = _engine(store)
    principal = Principal.authenticated(principal_id)

    edit = await engine.can_edit_poll(principal, _poll())
    delete = await engine.can_delete_poll(principal, _poll())

    assert not edit.allowed and edit.reason == REASON_NOT_OWNER
    assert not delete.allowed and delete.reason == REASON_NOT_OWNER
    records = await store.list_audit_records(action=ACTION_AUTHORIZATION_DENIED)
    assert len(records) == 2
    assert {record.detail["operation"] for record in records} == {"edit_poll", "delete_poll"}
    assert all(record.actor_id == principal_id for record in records)


@pytest.mark.asyncio
async def test_admin_may_act_on_other_owners_polls() -> None:
    store = InMemoryPollStore()
    await _grant_admin(store, "admin-1")
    engine = _engine(store)

    decision = await engine.can_delete_poll(Principal.authenticated("admin-1"), _poll())

    assert decision.allowed
    assert decision.reason == REASON_ADMIN


@pytest.mark.asyncio
async def test_admin_data_is_rechecked_after_revocation() -> None:
    store = InMemoryPollStore()
    await _grant_admin(store, "admin-1")
    engine = _engine(store)
    admin = Principal.authenticated("admin-1")

    assert (await engine.can_view_admin_data(admin)).allowed
    await store.delete_role("admin-1", ADMIN_ROLE)
    revoked = await engine.can_view_admin_data(admin)

    assert not revoked.allowed
    assert revoked.reason == REASON_NOT_ADMIN


@pytest.mark.asyncio
async def test_anonymous_is_denied_everything() -> None:
    store = InMemoryPollStore()
    engine = _engine(store)
    anonymous = Principal.anonymous()

    decisions = [
        await engine.can_edit_poll(anonymous, _poll()),
        await engine.can_delete_poll(anonymous, _poll()),
        await engine.can_view_admin_data(anonymous),
        await engine.can_manage_roles(anonymous),
    ]

    assert not any(decision.allowed for decision in decisions)
    assert {decision.reason for decision in decisions} == {REASON_ANONYMOUS}


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["error", "timeout", "malformed"])
async def test_role_lookup_failures_fail_closed(mode: str) -> None:
    store = BrokenRoleStore(mode)
    accessor = RoleStoreAccessor(store, timeout_ms=50)

    assert await accessor.has_role("admin-1", ADMIN_ROLE) is False

    engine = AuthorizationEngine(accessor, AuditRecorder(store))
    decision = await engine.can_delete_poll(Principal.authenticated("admin-1"), _poll())
    assert not decision.allowed


@pytest.mark.asyncio
async def test_has_role_rejects_blank_inputs() -> None:
    accessor = RoleStoreAccessor(InMemoryPollStore(), timeout_ms=50)
    assert await accessor.has_role(None, ADMIN_ROLE) is False
    assert await accessor.has_role("u1", "") is False
