from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from polly.core.config import get_settings
from polly.core.errors import ConstraintViolation, StorageError
from polly.domain.entities import AuditEntry, PollRecord, RoleAssignment, VoteRecord
from polly.domain.models import AuditRecord, Poll
from polly.persistence.repos import audit as audit_repo
from polly.persistence.repos import polls as polls_repo
from polly.persistence.repos import roles as roles_repo
from polly.persistence.repos import votes as votes_repo


logger = logging.getLogger(__name__)

T = TypeVar("T")

VOTE_UNIQUE_CONSTRAINT = "uq_votes_poll_voter"


class PollStore(Protocol):
    # Persistence contract consumed by the access-control core; any backend may implement it.
    async def get_poll(self, poll_id: str) -> PollRecord | None: ...

    async def insert_poll(
        self, *, owner_id: str, question: str, options: list[str], created_at: datetime
    ) -> PollRecord: ...

    async def update_poll(
        self,
        poll_id: str,
        *,
        question: str | None,
        options: list[str] | None,
        updated_at: datetime,
    ) -> PollRecord | None: ...

    async def delete_poll(self, poll_id: str) -> bool: ...

    async def list_polls(self, *, owner_id: str | None = None) -> list[PollRecord]: ...

    async def get_role(self, principal_id: str, role: str) -> bool: ...

    async def insert_role(self, assignment: RoleAssignment) -> bool: ...

    async def delete_role(self, principal_id: str, role: str) -> bool: ...

    async def vote_exists(self, poll_id: str, voter_id: str) -> bool: ...

    async def insert_vote(self, vote: VoteRecord) -> None: ...

    async def count_votes_since(self, voter_id: str, since: datetime) -> int: ...

    async def count_votes_by_option(self, poll_id: str) -> dict[int, int]: ...

    async def append_audit_record(self, entry: AuditEntry) -> None: ...

    async def list_audit_records(
        self, *, action: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[AuditEntry]: ...


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _poll_record(poll: Poll) -> PollRecord:
    return PollRecord(
        id=poll.id,
        owner_id=poll.owner_id,
        question=poll.question,
        options=tuple(poll.options or ()),
        created_at=_as_utc(poll.created_at),
        updated_at=_as_utc(poll.updated_at),
    )


def _audit_entry(row: AuditRecord) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        actor_id=row.actor_id,
        action=row.action,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        detail=dict(row.detail_json or {}),
        request_id=row.request_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=_as_utc(row.created_at),
    )


class SqlPollStore:
    """PollStore backed by async SQLAlchemy.

    Each call runs in its own session and transaction so concurrent requests
    never share state, and every call is bounded by ``store_timeout_ms``.
    Database failures and timeouts are logged here with full detail and
    re-raised as :class:`StorageError`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        if session_factory is None:
            from polly.persistence.db import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        resolved_timeout = timeout_ms if timeout_ms is not None else get_settings().store_timeout_ms
        self._timeout_s = max(resolved_timeout, 1) / 1000.0

    async def _call(self, op: str, func: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(func(), timeout=self._timeout_s)
        except ConstraintViolation:
            raise
        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as exc:
            logger.error("store_call_failed op=%s", op, exc_info=exc)
            raise StorageError() from exc

    async def get_poll(self, poll_id: str) -> PollRecord | None:
        async def _run() -> PollRecord | None:
            async with self._session_factory() as session:
                poll = await polls_repo.get_poll(session, poll_id)
                return _poll_record(poll) if poll is not None else None

        return await self._call("get_poll", _run)

    async def insert_poll(
        self, *, owner_id: str, question: str, options: list[str], created_at: datetime
    ) -> PollRecord:
        async def _run() -> PollRecord:
            async with self._session_factory() as session:
                poll = await polls_repo.create_poll(
                    session,
                    poll_id=str(uuid4()),
                    owner_id=owner_id,
                    question=question,
                    options=list(options),
                    created_at=created_at,
                )
                await session.commit()
                return _poll_record(poll)

        return await self._call("insert_poll", _run)

    async def update_poll(
        self,
        poll_id: str,
        *,
        question: str | None,
        options: list[str] | None,
        updated_at: datetime,
    ) -> PollRecord | None:
        async def _run() -> PollRecord | None:
            async with self._session_factory() as session:
                poll = await polls_repo.update_fields(
                    session,
                    poll_id,
                    question=question,
                    options=list(options) if options is not None else None,
                    updated_at=updated_at,
                )
                if poll is None:
                    return None
                await session.commit()
                return _poll_record(poll)

        return await self._call("update_poll", _run)

    async def delete_poll(self, poll_id: str) -> bool:
        async def _run() -> bool:
            async with self._session_factory() as session:
                deleted = await polls_repo.delete_poll(session, poll_id)
                await session.commit()
                return deleted

        return await self._call("delete_poll", _run)

    async def list_polls(self, *, owner_id: str | None = None) -> list[PollRecord]:
        async def _run() -> list[PollRecord]:
            async with self._session_factory() as session:
                polls = await polls_repo.list_polls(session, owner_id=owner_id)
                return [_poll_record(poll) for poll in polls]

        return await self._call("list_polls", _run)

    async def get_role(self, principal_id: str, role: str) -> bool:
        async def _run() -> bool:
            async with self._session_factory() as session:
                row = await roles_repo.get_role(session, principal_id=principal_id, role=role)
                return row is not None

        return await self._call("get_role", _run)

    async def insert_role(self, assignment: RoleAssignment) -> bool:
        async def _run() -> bool:
            async with self._session_factory() as session:
                existing = await roles_repo.get_role(
                    session, principal_id=assignment.principal_id, role=assignment.role
                )
                if existing is not None:
                    return False
                await roles_repo.create_role(
                    session,
                    principal_id=assignment.principal_id,
                    role=assignment.role,
                    granted_by=assignment.granted_by,
                    granted_at=assignment.granted_at,
                )
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent grant won the race; the assignment exists either way.
                    await session.rollback()
                    return False
                return True

        return await self._call("insert_role", _run)

    async def delete_role(self, principal_id: str, role: str) -> bool:
        async def _run() -> bool:
            async with self._session_factory() as session:
                deleted = await roles_repo.delete_role(session, principal_id=principal_id, role=role)
                await session.commit()
                return deleted

        return await self._call("delete_role", _run)

    async def vote_exists(self, poll_id: str, voter_id: str) -> bool:
        async def _run() -> bool:
            async with self._session_factory() as session:
                return await votes_repo.vote_exists(session, poll_id=poll_id, voter_id=voter_id)

        return await self._call("vote_exists", _run)

    async def insert_vote(self, vote: VoteRecord) -> None:
        async def _run() -> None:
            async with self._session_factory() as session:
                await votes_repo.create_vote(
                    session,
                    vote_id=vote.id,
                    poll_id=vote.poll_id,
                    voter_id=vote.voter_id,
                    option_index=vote.option_index,
                    created_at=vote.created_at,
                    ip_address=vote.ip_address,
                    user_agent=vote.user_agent,
                )
                try:
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    if vote.voter_id and await votes_repo.vote_exists(
                        session, poll_id=vote.poll_id, voter_id=vote.voter_id
                    ):
                        raise ConstraintViolation(VOTE_UNIQUE_CONSTRAINT) from exc
                    raise

        await self._call("insert_vote", _run)

    async def count_votes_since(self, voter_id: str, since: datetime) -> int:
        async def _run() -> int:
            async with self._session_factory() as session:
                return await votes_repo.count_votes_since(session, voter_id=voter_id, since=since)

        return await self._call("count_votes_since", _run)

    async def count_votes_by_option(self, poll_id: str) -> dict[int, int]:
        async def _run() -> dict[int, int]:
            async with self._session_factory() as session:
                return await votes_repo.count_by_option(session, poll_id=poll_id)

        return await self._call("count_votes_by_option", _run)

    async def append_audit_record(self, entry: AuditEntry) -> None:
        async def _run() -> None:
            async with self._session_factory() as session:
                session.add(
                    AuditRecord(
                        actor_id=entry.actor_id,
                        action=entry.action,
                        resource_type=entry.resource_type,
                        resource_id=entry.resource_id,
                        detail_json=entry.detail,
                        request_id=entry.request_id,
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                        created_at=entry.created_at,
                    )
                )
                await session.commit()

        await self._call("append_audit_record", _run)

    async def list_audit_records(
        self, *, action: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[AuditEntry]:
        async def _run() -> list[AuditEntry]:
            async with self._session_factory() as session:
                rows = await audit_repo.list_records(
                    session, action=action, offset=offset, limit=limit
                )
                return [_audit_entry(row) for row in rows]

        return await self._call("list_audit_records", _run)


def describe_store(store: Any) -> str:
    # Short backend label for health output and startup logs.
    return type(store).__name__
