"""polls, votes, user roles and audit records

Revision ID: 0001_polls
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_polls"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "polls",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_polls_owner_id", "polls", ["owner_id"], unique=False)
    op.create_index("ix_polls_created_at", "polls", ["created_at"], unique=False)

    op.create_table(
        "votes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "poll_id",
            sa.String(length=36),
            sa.ForeignKey("polls.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("voter_id", sa.String(), nullable=True),
        sa.Column("option_index", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("option_index >= 0", name="ck_votes_option_index"),
    )
    op.create_index("ix_votes_poll_id", "votes", ["poll_id"], unique=False)
    # One vote per signed-in voter per poll, enforced at insert time.
    op.create_index(
        "uq_votes_poll_voter",
        "votes",
        ["poll_id", "voter_id"],
        unique=True,
        postgresql_where=sa.text("voter_id IS NOT NULL"),
    )
    op.create_index(
        "ix_votes_voter_created_at", "votes", ["voter_id", "created_at"], unique=False
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("principal_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("granted_by", sa.String(), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("principal_id", "role", name="uq_user_roles_principal_role"),
    )
    op.create_index("ix_user_roles_principal_id", "user_roles", ["principal_id"], unique=False)
    op.create_index("ix_user_roles_role", "user_roles", ["role"], unique=False)

    op.create_table(
        "audit_records",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource_type", sa.String(length=50), nullable=False),
        sa.Column("resource_id", sa.String(), nullable=True),
        sa.Column("detail_json", postgresql.JSONB(), nullable=True),
        sa.Column("request_id", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_records_actor_id", "audit_records", ["actor_id"], unique=False)
    op.create_index("ix_audit_records_action", "audit_records", ["action"], unique=False)
    op.create_index("ix_audit_records_created_at", "audit_records", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_records_created_at", table_name="audit_records")
    op.drop_index("ix_audit_records_action", table_name="audit_records")
    op.drop_index("ix_audit_records_actor_id", table_name="audit_records")
    op.drop_table("audit_records")
    op.drop_index("ix_user_roles_role", table_name="user_roles")
    op.drop_index("ix_user_roles_principal_id", table_name="user_roles")
    op.drop_table("user_roles")
    op.drop_index("ix_votes_voter_created_at", table_name="votes")
    op.drop_index("uq_votes_poll_voter", table_name="votes")
    op.drop_index("ix_votes_poll_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_polls_created_at", table_name="polls")
    op.drop_index("ix_polls_owner_id", table_name="polls")
    op.drop_table("polls")
