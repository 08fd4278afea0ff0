"""
PostgreSQL Document Store - DocumentStore backed by a JSONB table.

Each collection is a partition of the ``documents`` table. Merges use the
JSONB ``||`` operator, so they replace top-level fields only.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal
from uuid import uuid4

from sqlalchemy import and_, cast, delete, func, literal, or_, select, update
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement
from structlog import get_logger

from storefront.db.document_store import (
    MAX_BATCH_WRITES,
    DocumentSnapshot,
    FieldFilter,
    encode_document,
)
from storefront.db.models import Document
from storefront.exceptions import BatchWriteError, DocumentStoreError, ResourceNotFoundError
from storefront.models.domain import PageCursor

logger = get_logger(__name__)


def _jsonb(value: Any) -> ColumnElement[Any]:
    """Bind a Python value as a JSONB literal for comparisons."""
    return cast(literal(json.dumps(encode_document({"v": value})["v"])), JSONB)


def _field_condition(flt: FieldFilter) -> ColumnElement[bool]:
    column = Document.data[flt.field]
    value = _jsonb(flt.value)
    if flt.op == "==":
        return and_(Document.data.has_key(flt.field), column == value)
    if flt.op == "!=":
        return or_(~Document.data.has_key(flt.field), column != value)
    if flt.op == "<":
        return column < value
    if flt.op == "<=":
        return column <= value
    if flt.op == ">":
        return column > value
    if flt.op == ">=":
        return column >= value
    raise ValueError(f"Unsupported filter operator: {flt.op}")


def _upsert(collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> Any:
    payload = encode_document(data)
    stmt = insert(Document).values(collection=collection, doc_id=doc_id, data=payload)
    new_data = (
        Document.data.op("||")(stmt.excluded.data) if merge else stmt.excluded.data
    )
    return stmt.on_conflict_do_update(
        index_elements=[Document.collection, Document.doc_id],
        set_={"data": new_data, "updated_at": func.now()},
    )


def _merge_update(collection: str, doc_id: str, data: dict[str, Any]) -> Any:
    return (
        update(Document)
        .where(Document.collection == collection, Document.doc_id == doc_id)
        .values(
            data=Document.data.op("||")(cast(literal(json.dumps(encode_document(data))), JSONB)),
            updated_at=func.now(),
        )
        .returning(Document.doc_id)
    )


@dataclass(frozen=True)
class _StagedWrite:
    kind: Literal["set", "update", "delete"]
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None
    merge: bool = False


class SqlWriteBatch:
    """Write batch applied in a single database transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._writes: list[_StagedWrite] = []

    def __len__(self) -> int:
        return len(self._writes)

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        self._writes.append(_StagedWrite("set", collection, doc_id, data, merge))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(_StagedWrite("update", collection, doc_id, data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(_StagedWrite("delete", collection, doc_id))

    async def commit(self) -> None:
        if len(self._writes) > MAX_BATCH_WRITES:
            raise BatchWriteError(
                chunk_index=0,
                size=len(self._writes),
                message=f"batch exceeds {MAX_BATCH_WRITES} writes",
            )
        if not self._writes:
            return

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for write in self._writes:
                        await self._apply(session, write)
        except ResourceNotFoundError as exc:
            raise BatchWriteError(chunk_index=0, size=len(self._writes), message=str(exc)) from exc
        except SQLAlchemyError as exc:
            logger.error("document_batch_commit_failed", writes=len(self._writes), error=str(exc))
            raise BatchWriteError(chunk_index=0, size=len(self._writes), message=str(exc)) from exc

        logger.debug("document_batch_committed", writes=len(self._writes))

    async def _apply(self, session: AsyncSession, write: _StagedWrite) -> None:
        if write.kind == "set":
            await session.execute(
                _upsert(write.collection, write.doc_id, write.data or {}, write.merge)
            )
        elif write.kind == "update":
            result = await session.execute(
                _merge_update(write.collection, write.doc_id, write.data or {})
            )
            if result.scalar_one_or_none() is None:
                raise ResourceNotFoundError(
                    f"Document not found: {write.collection}/{write.doc_id}"
                )
        else:
            await session.execute(
                delete(Document).where(
                    Document.collection == write.collection, Document.doc_id == write.doc_id
                )
            )


class SqlDocumentStore:
    """DocumentStore implementation over PostgreSQL JSONB."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        read_session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            session_factory: Factory for primary (write) sessions
            read_session_factory: Optional factory for replica reads
        """
        self._session_factory = session_factory
        self._read_session_factory = read_session_factory or session_factory

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        try:
            async with self._read_session_factory() as session:
                result = await session.execute(
                    select(Document.data).where(
                        Document.collection == collection, Document.doc_id == doc_id
                    )
                )
                data = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"get {collection}/{doc_id} failed: {exc}") from exc

        if data is None:
            return None
        return DocumentSnapshot(collection=collection, id=doc_id, data=dict(data))

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(_upsert(collection, doc_id, data, merge))
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"set {collection}/{doc_id} failed: {exc}") from exc

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(_merge_update(collection, doc_id, data))
                    updated = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"update {collection}/{doc_id} failed: {exc}") from exc

        if updated is None:
            raise ResourceNotFoundError(f"Document not found: {collection}/{doc_id}")

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(Document).where(
                            Document.collection == collection, Document.doc_id == doc_id
                        )
                    )
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"delete {collection}/{doc_id} failed: {exc}") from exc

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_after: PageCursor | None = None,
    ) -> list[DocumentSnapshot]:
        stmt = select(Document.doc_id, Document.data).where(Document.collection == collection)
        for flt in filters:
            stmt = stmt.where(_field_condition(flt))

        if order_by is not None:
            sort_column = Document.data[order_by]
            stmt = stmt.where(Document.data.has_key(order_by))
            if start_after is not None:
                cursor_value = _jsonb(start_after.sort_value)
                if descending:
                    stmt = stmt.where(
                        or_(
                            sort_column < cursor_value,
                            and_(sort_column == cursor_value, Document.doc_id < start_after.doc_id),
                        )
                    )
                else:
                    stmt = stmt.where(
                        or_(
                            sort_column > cursor_value,
                            and_(sort_column == cursor_value, Document.doc_id > start_after.doc_id),
                        )
                    )
            if descending:
                stmt = stmt.order_by(sort_column.desc(), Document.doc_id.desc())
            else:
                stmt = stmt.order_by(sort_column.asc(), Document.doc_id.asc())
        else:
            stmt = stmt.order_by(Document.doc_id.asc())
            if start_after is not None:
                stmt = stmt.where(Document.doc_id > start_after.doc_id)

        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._read_session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"query {collection} failed: {exc}") from exc

        return [
            DocumentSnapshot(collection=collection, id=doc_id, data=dict(data))
            for doc_id, data in rows
        ]

    def batch(self) -> SqlWriteBatch:
        return SqlWriteBatch(self._session_factory)

    async def ping(self) -> None:
        """Round-trip to the database (health checks)."""
        try:
            async with self._read_session_factory() as session:
                await session.execute(select(literal(1)))
        except SQLAlchemyError as exc:
            raise DocumentStoreError(f"ping failed: {exc}") from exc
