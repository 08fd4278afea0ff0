"""
Database Models - SQLAlchemy ORM models with strict typing.

The storefront keeps its records as JSON documents grouped into named
collections, so a single table backs every collection.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Document(Base):
    """
    ORM model for documents table.

    One row per document, keyed by (collection, doc_id).
    """

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("idx_documents_collection", "collection"),
        Index("idx_documents_data", "data", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id}>"
