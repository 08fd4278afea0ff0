"""Create documents table backing every storefront collection.

Revision ID: 2026_10_18_0001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_18_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create documents table with collection and JSONB indexes."""
    op.create_table(
        "documents",
        sa.Column("collection", sa.String(100), nullable=False),
        sa.Column("doc_id", sa.String(255), nullable=False),
        sa.Column("data", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("collection", "doc_id", name="pk_documents"),
    )
    op.create_index("idx_documents_collection", "documents", ["collection"])
    op.create_index("idx_documents_data", "documents", ["data"], postgresql_using="gin")


def downgrade() -> None:
    """Drop documents table."""
    op.drop_index("idx_documents_data", table_name="documents")
    op.drop_index("idx_documents_collection", table_name="documents")
    op.drop_table("documents")
