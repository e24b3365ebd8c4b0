"""add skill sessions and ledger insert order

Revision ID: 7c2e4a1f9b83
Revises: 3b1f6c9d2a40
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c2e4a1f9b83"
down_revision: str | Sequence[str] | None = "3b1f6c9d2a40"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "users",
        sa.Column(
            "total_sessions_taught", sa.Integer(), nullable=False, server_default="0"
        ),
    )
    op.add_column(
        "users",
        sa.Column(
            "total_sessions_completed", sa.Integer(), nullable=False, server_default="0"
        ),
    )
    op.create_table(
        "skill_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "teacher_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "student_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "skill_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("skills.id"),
            nullable=False,
        ),
        sa.Column(
            "status", sa.String(length=32), nullable=False, server_default="scheduled"
        ),
        sa.Column("credits_amount", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("credits_amount > 0", name="session_credits_positive"),
    )
    # Existing rows are numbered in physical order.
    op.add_column(
        "credit_transactions",
        sa.Column(
            "seq", sa.BigInteger(), sa.Identity(always=True), nullable=False
        ),
    )
    op.create_index(
        "ix_credit_transactions_related_id", "credit_transactions", ["related_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_credit_transactions_related_id", table_name="credit_transactions")
    op.drop_column("credit_transactions", "seq")
    op.drop_table("skill_sessions")
    op.drop_column("users", "total_sessions_completed")
    op.drop_column("users", "total_sessions_taught")
