"""initial storage and quota schema

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-18

user_quota (per-user ledger), subscription, stored_file, ledger_drift.
Byte counters are BIGINT.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "a1c2e3f4b5d6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "user_quota",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column(
            "storage_used_bytes",
            sa.BigInteger(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column("storage_limit_bytes", sa.BigInteger(), nullable=False),
        sa.Column(
            "active_plan", sa.String(length=32), server_default="FREE", nullable=False
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "subscription",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_subscription_user_id", "subscription", ["user_id"], unique=True
    )

    op.create_table(
        "stored_file",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("key", sa.String(length=1024), nullable=False),
        sa.Column("backend", sa.String(length=16), nullable=False),
        sa.Column("original_name", sa.String(length=1024), nullable=False),
        sa.Column("content_type", sa.String(length=255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("etag", sa.String(length=255), nullable=True),
        sa.Column("version_id", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
        sa.CheckConstraint("size_bytes >= 0", name="ck_stored_file_size_non_negative"),
    )
    op.create_index("ix_stored_file_user_id", "stored_file", ["user_id"])
    op.create_index(
        "ix_stored_file_user_created", "stored_file", ["user_id", "created_at"]
    )

    op.create_table(
        "ledger_drift",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("previous_bytes", sa.BigInteger(), nullable=False),
        sa.Column("reconciled_bytes", sa.BigInteger(), nullable=False),
        sa.Column("drift_bytes", sa.BigInteger(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ledger_drift_user_created", "ledger_drift", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_drift_user_created", table_name="ledger_drift")
    op.drop_table("ledger_drift")
    op.drop_index("ix_stored_file_user_created", table_name="stored_file")
    op.drop_index("ix_stored_file_user_id", table_name="stored_file")
    op.drop_table("stored_file")
    op.drop_index("ix_subscription_user_id", table_name="subscription")
    op.drop_table("subscription")
    op.drop_table("user_quota")
