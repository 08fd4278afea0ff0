"""
IAP Reconciler - Upserts fetched store products into the iapProducts collection.

Identity is the store SKU. New records are created unlinked; existing records
only receive store-origin fields, so link fields written by the link
maintainer survive every sync. Writes go out in atomic chunks no larger than
the store's batch limit; a rejected chunk is retried once and then counted as
failed without stopping later chunks.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from structlog import get_logger

from storefront.db.document_store import (
    IAP_PRODUCTS,
    MAX_BATCH_WRITES,
    SYNC_STATUS_DOC_ID,
    DocumentStore,
)
from storefront.exceptions import BatchWriteError, StorefrontError, TransformError
from storefront.models.domain import (
    Clock,
    LinkPatch,
    ReconcileSummary,
    StoreProduct,
    SyncPatch,
    SyncStatus,
    to_iso,
    utc_now,
)

logger = get_logger(__name__)

CHUNK_COMMIT_ATTEMPTS = 2


@dataclass(frozen=True)
class StagedUpsert:
    """One planned write: the document body and whether it creates the record."""

    sku: str
    document: dict[str, Any]
    is_new: bool


def plan_upsert(product: StoreProduct, existing: bool, now: datetime) -> StagedUpsert:
    """
    Build the write for one fetched product.

    Updates carry only SyncPatch fields. Creates add the unlinked LinkPatch
    and ``createdAt``.
    """
    document = SyncPatch.from_store_product(product, now).to_document()
    document["updatedAt"] = to_iso(now)
    if not existing:
        document.update(LinkPatch.unlinked().to_document())
        document["createdAt"] = to_iso(now)
    return StagedUpsert(sku=product.sku, document=document, is_new=not existing)


class IapReconciler:
    """Reconciles fetched store products with stored IapProduct records."""

    def __init__(
        self,
        store: DocumentStore,
        batch_size: int = MAX_BATCH_WRITES,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize reconciler.

        Args:
            store: Document store holding the iapProducts collection
            batch_size: Writes per atomic chunk (capped at the store limit)
            clock: Source of sync timestamps
        """
        self.store = store
        self.batch_size = max(1, min(batch_size, MAX_BATCH_WRITES))
        self.clock = clock

    async def reconcile(
        self,
        products: Sequence[StoreProduct],
        rejected: Sequence[TransformError] = (),
    ) -> ReconcileSummary:
        """
        Upsert every fetched product.

        Args:
            products: Normalized store products
            rejected: Records dropped during normalization (counted as failed)

        Returns:
            Summary of created, updated and failed records
        """
        summary = ReconcileSummary(total_seen=len(products) + len(rejected))
        for error in rejected:
            summary.failed += 1
            summary.errors.append(str(error))

        unique = self._dedupe(products)
        chunks = [
            unique[start : start + self.batch_size]
            for start in range(0, len(unique), self.batch_size)
        ]

        for chunk_index, chunk in enumerate(chunks):
            await self._apply_chunk(chunk_index, chunk, summary)

        logger.info(
            "iap_reconcile_completed",
            total_seen=summary.total_seen,
            created=summary.created,
            updated=summary.updated,
            failed=summary.failed,
            chunks=len(chunks),
        )
        return summary

    def _dedupe(self, products: Sequence[StoreProduct]) -> list[StoreProduct]:
        """Keep the last definition of each SKU, preserving first-seen order."""
        by_sku: dict[str, StoreProduct] = {}
        for product in products:
            if product.sku in by_sku:
                logger.warning("store_product_duplicate_sku", sku=product.sku)
            by_sku[product.sku] = product
        return list(by_sku.values())

    async def _apply_chunk(
        self, chunk_index: int, chunk: Sequence[StoreProduct], summary: ReconcileSummary
    ) -> None:
        now = self.clock()
        staged: list[StagedUpsert] = []

        for product in chunk:
            try:
                existing = await self.store.get(IAP_PRODUCTS, product.sku)
            except StorefrontError as exc:
                logger.error("iap_reconcile_lookup_failed", sku=product.sku, error=str(exc))
                summary.failed += 1
                summary.errors.append(f"{product.sku}: lookup failed: {exc}")
                continue
            staged.append(plan_upsert(product, existing is not None, now))

        if not staged:
            return

        for attempt in range(1, CHUNK_COMMIT_ATTEMPTS + 1):
            batch = self.store.batch()
            for write in staged:
                batch.set(IAP_PRODUCTS, write.sku, write.document, merge=True)
            try:
                await batch.commit()
                break
            except BatchWriteError as exc:
                logger.warning(
                    "iap_reconcile_chunk_rejected",
                    chunk_index=chunk_index,
                    size=len(staged),
                    attempt=attempt,
                    error=exc.message,
                )
                if attempt == CHUNK_COMMIT_ATTEMPTS:
                    summary.failed += len(staged)
                    summary.errors.append(
                        str(BatchWriteError(chunk_index, len(staged), exc.message))
                    )
                    return

        created = sum(1 for write in staged if write.is_new)
        summary.created += created
        summary.updated += len(staged) - created

    async def write_sync_status(self, status: SyncStatus) -> None:
        """Record the sync marker in its sentinel document."""
        await self.store.set(IAP_PRODUCTS, SYNC_STATUS_DOC_ID, status.to_document(), merge=True)
