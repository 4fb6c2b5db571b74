from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from polly.domain.models import UserRole


async def get_role(session: AsyncSession, *, principal_id: str, role: str) -> UserRole | None:
    result = await session.execute(
        select(UserRole).where(UserRole.principal_id == principal_id, UserRole.role == role)
    )
    return result.scalar_one_or_none()


async def create_role(
    session: AsyncSession,
    *,
    principal_id: str,
    role: str,
    granted_by: str | None,
    granted_at: datetime,
) -> UserRole:
    assignment = UserRole(
        id=str(uuid4()),
        principal_id=principal_id,
        role=role,
        granted_by=granted_by,
        granted_at=granted_at,
    )
    session.add(assignment)
    return assignment


async def delete_role(session: AsyncSession, *, principal_id: str, role: str) -> bool:
    result = await session.execute(
        delete(UserRole).where(UserRole.principal_id == principal_id, UserRole.role == role)
    )
    return bool(result.rowcount)
