from __future__ import annotations

import pytest

from polly.core.config import ADMIN_ROLE
from polly.domain.principal import Principal
from polly.services.roles import bootstrap_admin


ADMIN = Principal.authenticated("admin-1")
USER = Principal.authenticated("user-1")


@pytest.mark.asyncio
async def test_admin_lists_all_polls(services, memory_store) -> None:
    await bootstrap_admin(memory_store, "admin-1")
    await services.polls.create_poll(USER, "First?", ["A", "B"])
    await services.polls.create_poll(Principal.authenticated("user-2"), "Second?", ["A", "B"])

    result = await services.admin.list_all_polls_for_admin(ADMIN)

    assert result.ok
    assert {poll["question"] for poll in result.data} == {"First?", "Second?"}


@pytest.mark.asyncio
async def test_non_admin_cannot_list_all_polls(services, memory_store) -> None:
    result = await services.admin.list_all_polls_for_admin(USER)

    assert result.code == "NOT_PERMITTED"
    [audit] = await memory_store.list_audit_records(action="authorization_denied")
    assert audit.detail == {"operation": "view_admin_data", "reason": "admin_role_required"}


@pytest.mark.asyncio
async def test_grant_and_revoke_roles(services, memory_store) -> None:
    await bootstrap_admin(memory_store, "admin-1")

    granted = await services.admin.grant_role(ADMIN, "user-1", ADMIN_ROLE)
    again = await services.admin.grant_role(ADMIN, "user-1", ADMIN_ROLE)
    assert granted.data["created"] is True
    assert again.data["created"] is False
    assert (await services.admin.list_all_polls_for_admin(USER)).ok

    revoked = await services.admin.revoke_role(ADMIN, "user-1", ADMIN_ROLE)
    missing = await services.admin.revoke_role(ADMIN, "user-1", ADMIN_ROLE)
    assert revoked.ok
    assert missing.code == "NOT_FOUND"
    assert not (await services.admin.list_all_polls_for_admin(USER)).ok

    actions = [entry.action for entry in await memory_store.list_audit_records()]
    assert actions.count("role_granted") == 1
    assert actions.count("role_revoked") == 1


@pytest.mark.asyncio
async def test_roles_cannot_be_self_assigned(services, memory_store) -> None:
    await bootstrap_admin(memory_store, "admin-1")

    self_grant = await services.admin.grant_role(USER, "user-1", ADMIN_ROLE)
    self_revoke = await services.admin.revoke_role(ADMIN, "admin-1", ADMIN_ROLE)

    assert self_grant.code == "NOT_PERMITTED"
    assert self_revoke.code == "NOT_PERMITTED"
    assert await memory_store.get_role("user-1", ADMIN_ROLE) is False
    assert await memory_store.get_role("admin-1", ADMIN_ROLE) is True


@pytest.mark.asyncio
async def test_role_names_are_validated(services, memory_store) -> None:
    await bootstrap_admin(memory_store, "admin-1")

    result = await services.admin.grant_role(ADMIN, "user-1", "Admin; DROP")

    assert result.code == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_audit_listing_is_admin_only_and_capped(services, memory_store) -> None:
    await bootstrap_admin(memory_store, "admin-1")
    for _ in range(3):
        await services.polls.create_poll(USER, "Best color?", ["Red", "Blue"])

    page = await services.admin.list_audit_records(ADMIN, action="poll_created", limit=2)
    denied = await services.admin.list_audit_records(USER)
    invalid = await services.admin.list_audit_records(ADMIN, offset=-1)

    assert len(page.data) == 2
    assert all(item["action"] == "poll_created" for item in page.data)
    assert denied.code == "NOT_PERMITTED"
    assert invalid.code == "VALIDATION_ERROR"
