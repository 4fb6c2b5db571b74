from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from polly.domain.models import AuditRecord


async def list_records(
    session: AsyncSession,
    *,
    action: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditRecord]:
    stmt = select(AuditRecord)
    if action:
        stmt = stmt.where(AuditRecord.action == action)

    # Newest first; id breaks ties between records written in the same instant.
    stmt = stmt.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
    stmt = stmt.offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
