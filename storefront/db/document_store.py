"""
Document Store Protocol - Backend-agnostic key-document storage.

Services receive a DocumentStore through their constructors and never reach
for a process-wide client, so tests can substitute an in-memory store.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Protocol

from storefront.models.domain import Page, PageCursor, to_iso

# Maximum number of writes accepted in one atomic batch
MAX_BATCH_WRITES = 500

# Collection names (shared with the admin UI and other tooling)
IAP_PRODUCTS = "iapProducts"
PRODUCTS = "products"
CATEGORIES = "categories"
PURCHASES = "purchases"
USERS = "users"
ADMINS = "admins"

# Sentinel document in IAP_PRODUCTS holding the last sync marker
SYNC_STATUS_DOC_ID = "_sync_status"

FilterOp = Literal["==", "!=", "<", "<=", ">", ">="]


@dataclass(frozen=True)
class DocumentSnapshot:
    """A document read from the store."""

    collection: str
    id: str
    data: dict[str, Any]

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)


@dataclass(frozen=True)
class FieldFilter:
    """Comparison of one top-level document field against a value."""

    field: str
    op: FilterOp
    value: Any


class WriteBatch(Protocol):
    """Staged writes committed atomically."""

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        """Stage an overwrite (or top-level merge) of a document."""
        ...

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Stage a merge into an existing document; the batch fails if it is absent."""
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        """Stage a delete."""
        ...

    def __len__(self) -> int: ...

    async def commit(self) -> None:
        """
        Apply every staged write atomically.

        Raises:
            BatchWriteError: If the store rejects the batch
        """
        ...


class DocumentStore(Protocol):
    """
    Transactional key-document store.

    Any backend (PostgreSQL JSONB, an in-memory fake, a hosted document DB)
    must implement this interface.
    """

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        """Read one document, or None if absent."""
        ...

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        """Write a document, replacing it or merging top-level fields."""
        ...

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            ResourceNotFoundError: If the document does not exist
        """
        ...

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document if it exists."""
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document under a generated id and return the id."""
        ...

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_after: PageCursor | None = None,
    ) -> list[DocumentSnapshot]:
        """
        Range query ordered by one field.

        Documents missing the ``order_by`` field are excluded. Ties on the
        sort field are broken by document id in the same direction.
        """
        ...

    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""
        ...

    async def ping(self) -> None:
        """Round-trip to the backend; raises if it is unreachable."""
        ...


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_document(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize a document to plain JSON values (timestamps become ISO text)."""
    result: dict[str, Any] = json.loads(json.dumps(data, default=_json_default))
    return result


async def fetch_page(
    store: DocumentStore,
    collection: str,
    *,
    order_by: str,
    page_size: int,
    cursor: PageCursor | None = None,
    descending: bool = True,
    filters: Sequence[FieldFilter] = (),
) -> Page[DocumentSnapshot]:
    """
    Fetch one page of an ordered listing.

    Reads one document past the page to learn whether more remain.
    """
    docs = await store.query(
        collection,
        filters=filters,
        order_by=order_by,
        descending=descending,
        limit=page_size + 1,
        start_after=cursor,
    )
    has_more = len(docs) > page_size
    items = docs[:page_size]
    next_cursor = None
    if has_more and items:
        last = items[-1]
        next_cursor = PageCursor(sort_value=last.data.get(order_by), doc_id=last.id)
    return Page(items=items, has_more=has_more, next_cursor=next_cursor)
