from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from polly.domain.models import Vote


async def vote_exists(session: AsyncSession, *, poll_id: str, voter_id: str) -> bool:
    result = await session.execute(
        select(Vote.id).where(Vote.poll_id == poll_id, Vote.voter_id == voter_id).limit(1)
    )
    return result.first() is not None


async def create_vote(
    session: AsyncSession,
    *,
    vote_id: str,
    poll_id: str,
    voter_id: str,
    option_index: int,
    created_at: datetime,
    ip_address: str | None,
    user_agent: str | None,
) -> Vote:
    vote = Vote(
        id=vote_id,
        poll_id=poll_id,
        voter_id=voter_id,
        option_index=option_index,
        created_at=created_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(vote)
    return vote


async def count_votes_since(session: AsyncSession, *, voter_id: str, since: datetime) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Vote)
        .where(Vote.voter_id == voter_id, Vote.created_at >= since)
    )
    return int(result.scalar() or 0)


async def count_by_option(session: AsyncSession, *, poll_id: str) -> dict[int, int]:
    result = await session.execute(
        select(Vote.option_index, func.count())
        .where(Vote.poll_id == poll_id)
        .group_by(Vote.option_index)
    )
    return {int(index): int(count) for index, count in result.all()}
