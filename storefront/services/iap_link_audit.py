"""
IAP Link Auditor - Periodic repair pass for product/IAP link integrity.

The post-write hook is best effort and has a known release-after-reclaim
race. This pass scans both collections and restores the invariant:
every linked IapProduct points at a product that still claims it on the
same platform, and every claimed IapProduct is linked to a claimant.
When several products claim one SKU the most recently updated one wins.
"""

from dataclasses import asdict, dataclass
from typing import Any

from structlog import get_logger

from storefront.db.document_store import (
    IAP_PRODUCTS,
    MAX_BATCH_WRITES,
    PRODUCTS,
    SYNC_STATUS_DOC_ID,
    DocumentSnapshot,
    DocumentStore,
)
from storefront.db.session import create_document_store
from storefront.exceptions import BatchWriteError, StorefrontError
from storefront.models.api import Platform
from storefront.models.domain import (
    Clock,
    IapLinkState,
    LinkAuditSummary,
    LinkPatch,
    ProductIapRefs,
    to_iso,
    utc_now,
)
from storefront.observability.metrics import metrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Repair:
    sku: str
    patch: LinkPatch
    action: str  # "cleared" or "relinked"


def _claim_order_key(doc: DocumentSnapshot) -> tuple[str, str]:
    return (str(doc.get("updatedAt") or doc.get("createdAt") or ""), doc.id)


class IapLinkAuditor:
    """Scans products and IAP products and repairs inconsistent links."""

    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def audit(self) -> LinkAuditSummary:
        """
        Run one audit pass.

        Returns:
            Counts of records checked, links cleared and links re-granted
        """
        summary = LinkAuditSummary()

        products = await self.store.query(PRODUCTS)
        iap_products = [
            doc for doc in await self.store.query(IAP_PRODUCTS) if doc.id != SYNC_STATUS_DOC_ID
        ]
        summary.checked_products = len(products)
        summary.checked_iap_products = len(iap_products)

        claimants = self._collect_claims(products)
        known_skus = {(self._platform_of(doc), doc.id) for doc in iap_products}

        for (platform, sku), claimed_by in claimants.items():
            if (platform, sku) not in known_skus:
                logger.warning(
                    "iap_link_audit_dangling_claim",
                    platform=platform.value,
                    iap_product_id=sku,
                    product_ids=sorted(claimed_by),
                )

        repairs = [
            repair
            for doc in iap_products
            if (repair := self._plan_repair(doc, claimants)) is not None
        ]
        await self._apply(repairs, summary)

        metrics.record_link_repair("cleared", summary.cleared)
        metrics.record_link_repair("relinked", summary.relinked)
        logger.info(
            "iap_link_audit_completed",
            checked_products=summary.checked_products,
            checked_iap_products=summary.checked_iap_products,
            cleared=summary.cleared,
            relinked=summary.relinked,
        )
        return summary

    @staticmethod
    def _platform_of(doc: DocumentSnapshot) -> Platform:
        # Records without a platform predate multi-platform sync
        return IapLinkState.from_document(doc.id, doc.data).platform or Platform.ANDROID

    def _collect_claims(
        self, products: list[DocumentSnapshot]
    ) -> dict[tuple[Platform, str], list[str]]:
        """Map (platform, sku) to claiming product ids, latest update last."""
        ordered = sorted(products, key=_claim_order_key)
        claims: dict[tuple[Platform, str], list[str]] = {}
        for doc in ordered:
            if doc.get("isFree"):
                continue
            refs = ProductIapRefs.from_document(doc.data)
            for platform in Platform:
                sku = refs.for_platform(platform)
                if sku:
                    claims.setdefault((platform, sku), []).append(doc.id)
        return claims

    def _plan_repair(
        self,
        doc: DocumentSnapshot,
        claimants: dict[tuple[Platform, str], list[str]],
    ) -> _Repair | None:
        state = IapLinkState.from_document(doc.id, doc.data)
        claimed_by = claimants.get((self._platform_of(doc), doc.id), [])

        holder_valid = state.linked_product_id in claimed_by
        if holder_valid and state.is_consistent:
            return None

        if claimed_by:
            winner = claimed_by[-1]
            logger.info(
                "iap_link_audit_regrant",
                iap_product_id=doc.id,
                previous_product_id=state.linked_product_id,
                product_id=winner,
            )
            return _Repair(sku=doc.id, patch=LinkPatch.linked_to(winner), action="relinked")

        if state.linked_product_id is not None or state.is_linked:
            logger.info(
                "iap_link_audit_clear",
                iap_product_id=doc.id,
                previous_product_id=state.linked_product_id,
            )
            return _Repair(sku=doc.id, patch=LinkPatch.unlinked(), action="cleared")

        return None

    async def _apply(self, repairs: list[_Repair], summary: LinkAuditSummary) -> None:
        now = to_iso(self.clock())
        for start in range(0, len(repairs), MAX_BATCH_WRITES):
            chunk = repairs[start : start + MAX_BATCH_WRITES]
            batch = self.store.batch()
            for repair in chunk:
                batch.update(
                    IAP_PRODUCTS, repair.sku, {**repair.patch.to_document(), "updatedAt": now}
                )
            try:
                await batch.commit()
            except BatchWriteError as exc:
                logger.error(
                    "iap_link_audit_batch_failed",
                    chunk_index=start // MAX_BATCH_WRITES,
                    size=len(chunk),
                    error=exc.message,
                )
                metrics.record_error("BatchWriteError", "iap_link_audit")
                continue
            for repair in chunk:
                if repair.action == "cleared":
                    summary.cleared += 1
                else:
                    summary.relinked += 1


async def run_scheduled_link_audit() -> dict[str, Any]:
    """
    Entry point for the periodic scheduler: one audit pass against the configured store.

    Returns:
        The audit counters, or {error} when the pass could not complete
    """
    try:
        summary = await IapLinkAuditor(create_document_store()).audit()
    except StorefrontError as exc:
        logger.error("iap_link_audit_failed", error=str(exc))
        metrics.record_error(type(exc).__name__, "iap_link_audit")
        return {"error": str(exc)}
    return asdict(summary)
