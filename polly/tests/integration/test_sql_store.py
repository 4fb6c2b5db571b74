from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from polly.core.config import get_settings
from polly.core.errors import ConstraintViolation, StorageError
from polly.domain.entities import AuditEntry, RoleAssignment, VoteRecord
from polly.domain.principal import Principal
from polly.services.registry import build_services
from polly.services.votes import CODE_ALREADY_VOTED
from polly.tests.utils.clock import FakeClock


_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _vote(poll_id: str, voter_id: str | None, option_index: int = 0, **kwargs) -> VoteRecord:
    return VoteRecord(
        id=str(uuid4()),
        poll_id=poll_id,
        voter_id=voter_id,
        option_index=option_index,
        created_at=kwargs.pop("created_at", _NOW),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_poll_round_trip_and_listing(sql_store) -> None:
    first = await sql_store.insert_poll(
        owner_id="alice", question="Best color?", options=["Red", "Blue"], created_at=_NOW
    )
    await sql_store.insert_poll(
        owner_id="bob", question="Lunch?", options=["Pizza", "Soup"], created_at=_NOW + timedelta(minutes=1)
    )

    loaded = await sql_store.get_poll(first.id)
    assert loaded.options == ("Red", "Blue")
    assert loaded.created_at == _NOW
    assert [poll.owner_id for poll in await sql_store.list_polls()] == ["bob", "alice"]
    assert [poll.id for poll in await sql_store.list_polls(owner_id="alice")] == [first.id]

    updated = await sql_store.update_poll(
        first.id, question="Best colour?", options=None, updated_at=_NOW + timedelta(hours=1)
    )
    assert updated.question == "Best colour?"
    assert updated.options == ("Red", "Blue")
    assert await sql_store.update_poll(str(uuid4()), question="x", options=None, updated_at=_NOW) is None


@pytest.mark.asyncio
async def test_duplicate_vote_raises_constraint_violation(sql_store) -> None:
    poll = await sql_store.insert_poll(owner_id="alice", question="Q?", options=["A", "B"], created_at=_NOW)
    await sql_store.insert_vote(_vote(poll.id, "voter"))

    with pytest.raises(ConstraintViolation):
        await sql_store.insert_vote(_vote(poll.id, "voter", 1))

    assert await sql_store.vote_exists(poll.id, "voter")
    assert await sql_store.count_votes_by_option(poll.id) == {0: 1}


@pytest.mark.asyncio
async def test_null_voters_are_not_unique(sql_store) -> None:
    poll = await sql_store.insert_poll(owner_id="alice", question="Q?", options=["A", "B"], created_at=_NOW)

    await sql_store.insert_vote(_vote(poll.id, None))
    await sql_store.insert_vote(_vote(poll.id, None, 1))

    assert await sql_store.count_votes_by_option(poll.id) == {0: 1, 1: 1}


@pytest.mark.asyncio
async def test_delete_poll_removes_votes(sql_store) -> None:
    poll = await sql_store.insert_poll(owner_id="alice", question="Q?", options=["A", "B"], created_at=_NOW)
    await sql_store.insert_vote(_vote(poll.id, "voter"))

    assert await sql_store.delete_poll(poll.id) is True
    assert await sql_store.delete_poll(poll.id) is False
    assert await sql_store.vote_exists(poll.id, "voter") is False


@pytest.mark.asyncio
async def test_count_votes_since_uses_trailing_window(sql_store) -> None:
    polls = [
        await sql_store.insert_poll(owner_id="alice", question=f"Q{i}?", options=["A", "B"], created_at=_NOW)
        for i in range(3)
    ]
    await sql_store.insert_vote(_vote(polls[0].id, "voter", created_at=_NOW - timedelta(seconds=90)))
    await sql_store.insert_vote(_vote(polls[1].id, "voter", created_at=_NOW - timedelta(seconds=30)))
    await sql_store.insert_vote(_vote(polls[2].id, "voter", created_at=_NOW))

    assert await sql_store.count_votes_since("voter", _NOW - timedelta(seconds=60)) == 2
    assert await sql_store.count_votes_since("someone-else", _NOW - timedelta(seconds=60)) == 0


@pytest.mark.asyncio
async def test_roles_are_unique_per_principal(sql_store) -> None:
    assignment = RoleAssignment(principal_id="u1", role="admin", granted_by="root", granted_at=_NOW)

    assert await sql_store.insert_role(assignment) is True
    assert await sql_store.insert_role(assignment) is False
    assert await sql_store.get_role("u1", "admin") is True
    assert await sql_store.delete_role("u1", "admin") is True
    assert await sql_store.get_role("u1", "admin") is False


@pytest.mark.asyncio
async def test_audit_records_append_and_list(sql_store) -> None:
    for offset, action in enumerate(["poll_created", "vote_cast", "poll_created"]):
        await sql_store.append_audit_record(
            AuditEntry(
                actor_id="u1",
                action=action,
                resource_type="poll",
                resource_id="p1",
                created_at=_NOW + timedelta(seconds=offset),
                detail={"n": offset},
            )
        )

    created = await sql_store.list_audit_records(action="poll_created")
    assert [entry.detail["n"] for entry in created] == [2, 0]
    assert created[0].created_at == _NOW + timedelta(seconds=2)
    assert len(await sql_store.list_audit_records(limit=1)) == 1


@pytest.mark.asyncio
async def test_concurrent_votes_against_database(sql_store) -> None:
    services = build_services(get_settings(), store=sql_store, clock=FakeClock())
    owner = Principal.authenticated("owner")
    voter = Principal.authenticated("voter")
    poll_id = (await services.polls.create_poll(owner, "Best color?", ["Red", "Blue"])).data["id"]

    results = await asyncio.gather(*(services.votes.submit_vote(voter, poll_id, 0) for _ in range(5)))

    assert sum(1 for result in results if result.ok) == 1
    assert CODE_ALREADY_VOTED in {result.code for result in results if not result.ok}
    assert await sql_store.count_votes_by_option(poll_id) == {0: 1}


@pytest.mark.asyncio
async def test_full_length_question_survives_escaping(sql_store) -> None:
    services = build_services(get_settings(), store=sql_store, clock=FakeClock())
    question = '"&' * 249 + "??"
    assert len(question) == 500

    result = await services.polls.create_poll(Principal.authenticated("alice"), question, ["Red", "Blue"])

    assert result.ok, result.error
    stored = await sql_store.get_poll(result.data["id"])
    assert stored.question == "&quot;&amp;" * 249 + "??"
    assert len(stored.question) > 500


@pytest.mark.asyncio
async def test_vote_for_unknown_poll_is_refused(sql_store) -> None:
    with pytest.raises(StorageError):
        await sql_store.insert_vote(_vote(str(uuid4()), "voter"))

    assert await sql_store.count_votes_since("voter", _NOW - timedelta(days=1)) == 0
