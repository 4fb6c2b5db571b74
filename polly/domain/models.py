from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests and local runs).
JsonType = JSON().with_variant(JSONB(), "postgresql")
# SQLite only autoincrements INTEGER PRIMARY KEY columns.
AutoIncrementId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


class Poll(Base):
    __tablename__ = "polls"
    __table_args__ = (Index("ix_polls_created_at", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, index=True)
    # Escaped text; the length limit applies to the raw input and is enforced before storage.
    question: Mapped[str] = mapped_column(Text)
    # Ordered option labels; vote rows reference them by position.
    options: Mapped[list[str]] = mapped_column(JsonType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        CheckConstraint("option_index >= 0", name="ck_votes_option_index"),
        # Authoritative duplicate-vote guard; the service pre-check only gives a faster error.
        Index(
            "uq_votes_poll_voter",
            "poll_id",
            "voter_id",
            unique=True,
            postgresql_where=text("voter_id IS NOT NULL"),
            sqlite_where=text("voter_id IS NOT NULL"),
        ),
        Index("ix_votes_voter_created_at", "voter_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    poll_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("polls.id", ondelete="CASCADE"), index=True
    )
    # Nullable in the schema; the submission path never writes anonymous votes.
    voter_id: Mapped[str | None] = mapped_column(String, nullable=True)
    option_index: Mapped[int] = mapped_column(Integer)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("principal_id", "role", name="uq_user_roles_principal_role"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    principal_id: Mapped[str] = mapped_column(String, index=True)
    role: Mapped[str] = mapped_column(String(50), index=True)
    granted_by: Mapped[str | None] = mapped_column(String, nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AuditRecord(Base):
    __tablename__ = "audit_records"

    # Monotonic id for stable newest-first pagination.
    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), index=True)
    resource_type: Mapped[str] = mapped_column(String(50))
    resource_id: Mapped[str | None] = mapped_column(String, nullable=True)
    detail_json: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
