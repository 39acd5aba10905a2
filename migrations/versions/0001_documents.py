"""documents table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- documents ---
    # currentWeek, pastWeeks, dreams and scoring all live here, one row per document
    op.create_table(
        "documents",
        sa.Column("container", sa.String(64), nullable=False),
        sa.Column("partition_key", sa.String(256), nullable=False),
        sa.Column("doc_id", sa.String(256), nullable=False),
        sa.Column("body", sa.Text(), nullable=False,
                  comment="JSON-encoded document, without the _etag field"),
        sa.Column("etag", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("container", "partition_key", "doc_id"),
    )
    op.create_index(
        "ix_documents_container_partition",
        "documents",
        ["container", "partition_key"],
    )


def downgrade() -> None:
    op.drop_index("ix_documents_container_partition", table_name="documents")
    op.drop_table("documents")
