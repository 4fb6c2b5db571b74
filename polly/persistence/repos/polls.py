from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from polly.domain.models import Poll, Vote


async def get_poll(session: AsyncSession, poll_id: str) -> Poll | None:
    result = await session.execute(select(Poll).where(Poll.id == poll_id))
    return result.scalar_one_or_none()


async def create_poll(
    session: AsyncSession,
    *,
    poll_id: str,
    owner_id: str,
    question: str,
    options: list[str],
    created_at: datetime,
) -> Poll:
    poll = Poll(
        id=poll_id,
        owner_id=owner_id,
        question=question,
        options=options,
        created_at=created_at,
        updated_at=created_at,
    )
    session.add(poll)
    return poll


async def update_fields(
    session: AsyncSession,
    poll_id: str,
    *,
    question: str | None = None,
    options: list[str] | None = None,
    updated_at: datetime,
) -> Poll | None:
    # Fetch first so a missing poll is reported instead of silently upserted.
    poll = await get_poll(session, poll_id)
    if poll is None:
        return None
    if question is not None:
        poll.question = question
    if options is not None:
        poll.options = options
    poll.updated_at = updated_at
    return poll


async def delete_poll(session: AsyncSession, poll_id: str) -> bool:
    # Remove votes explicitly so the cascade holds on backends without FK enforcement.
    await session.execute(delete(Vote).where(Vote.poll_id == poll_id))
    result = await session.execute(delete(Poll).where(Poll.id == poll_id))
    return bool(result.rowcount)


async def list_polls(session: AsyncSession, *, owner_id: str | None = None) -> list[Poll]:
    # Newest first, with id as a tiebreaker for deterministic listings.
    stmt = select(Poll)
    if owner_id is not None:
        stmt = stmt.where(Poll.owner_id == owner_id)
    result = await session.execute(stmt.order_by(Poll.created_at.desc(), Poll.id.desc()))
    return list(result.scalars().all())
