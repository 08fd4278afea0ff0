"""
IAP Link Maintainer - Keeps iapProducts link fields in step with product claims.

Runs after a product write has committed. For each platform independently it
releases the IAP product the product no longer claims and (re)grants the one
it now claims. The grant is unconditional so a repeated save repairs any
earlier partial failure.

Nothing here propagates to the caller: the product write is the operation of
record, so every failure is logged and reported in the returned report.
"""

from typing import Any, NoReturn

from structlog import get_logger

from storefront.db.document_store import IAP_PRODUCTS, SYNC_STATUS_DOC_ID, DocumentStore
from storefront.exceptions import LinkIntegrityWarning, ResourceNotFoundError
from storefront.models.api import Platform
from storefront.models.domain import (
    Clock,
    IapLinkState,
    LinkMaintenanceReport,
    LinkOutcome,
    LinkPatch,
    ProductIapRefs,
    to_iso,
    utc_now,
)
from storefront.observability.metrics import metrics

logger = get_logger(__name__)


class IapLinkMaintainer:
    """Post-commit hook for product create, update and delete."""

    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def on_product_written(
        self,
        product_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> LinkMaintenanceReport:
        """
        Align IAP link fields with a product's before/after state.

        Args:
            product_id: The product that was written
            before: Product document before the write (None on create)
            after: Product document after the write (None on delete)

        Returns:
            Per-platform outcomes; never raises
        """
        old_refs = ProductIapRefs.from_document(before)
        new_refs = ProductIapRefs.from_document(after)

        outcomes = []
        for platform in Platform:
            try:
                outcome = await self._maintain_platform(
                    product_id,
                    platform,
                    old_refs.for_platform(platform),
                    new_refs.for_platform(platform),
                )
            except Exception as exc:
                logger.exception(
                    "iap_link_maintenance_failed",
                    product_id=product_id,
                    platform=platform.value,
                    error=str(exc),
                )
                outcome = LinkOutcome(platform=platform, warnings=(str(exc),))
            outcomes.append(outcome)

        report = LinkMaintenanceReport(product_id=product_id, outcomes=tuple(outcomes))
        if not report.ok:
            logger.warning(
                "iap_link_maintenance_incomplete",
                product_id=product_id,
                warnings=[w for o in report.outcomes for w in o.warnings],
            )
        return report

    async def on_product_deleted(
        self, product_id: str, before: dict[str, Any] | None
    ) -> LinkMaintenanceReport:
        """Release every IAP product the deleted product claimed."""
        return await self.on_product_written(product_id, before, None)

    async def _maintain_platform(
        self,
        product_id: str,
        platform: Platform,
        old_iap_id: str | None,
        new_iap_id: str | None,
    ) -> LinkOutcome:
        unlinked: str | None = None
        linked: str | None = None
        warnings: list[str] = []

        # Release is attempted first and does not gate the grant
        if old_iap_id and old_iap_id != new_iap_id:
            try:
                await self._write_link(platform, old_iap_id, LinkPatch.unlinked(), "unlink")
                unlinked = old_iap_id
                logger.info(
                    "iap_link_released",
                    product_id=product_id,
                    platform=platform.value,
                    iap_product_id=old_iap_id,
                )
            except LinkIntegrityWarning as warning:
                logger.warning(
                    "iap_link_release_skipped",
                    product_id=product_id,
                    platform=platform.value,
                    iap_product_id=old_iap_id,
                    reason=warning.reason,
                )
                warnings.append(str(warning))

        if new_iap_id:
            try:
                await self._write_link(
                    platform, new_iap_id, LinkPatch.linked_to(product_id), "link"
                )
                linked = new_iap_id
                logger.info(
                    "iap_link_granted",
                    product_id=product_id,
                    platform=platform.value,
                    iap_product_id=new_iap_id,
                )
            except LinkIntegrityWarning as warning:
                logger.error(
                    "iap_link_grant_failed",
                    product_id=product_id,
                    platform=platform.value,
                    iap_product_id=new_iap_id,
                    reason=warning.reason,
                )
                warnings.append(str(warning))

        return LinkOutcome(
            platform=platform, unlinked=unlinked, linked=linked, warnings=tuple(warnings)
        )

    async def _write_link(
        self, platform: Platform, iap_product_id: str, patch: LinkPatch, action: str
    ) -> None:
        """
        Write link fields onto an existing IapProduct of the given platform.

        Raises:
            LinkIntegrityWarning: If the target is not an IapProduct of the
                platform, is missing, or the write fails
        """
        if iap_product_id == SYNC_STATUS_DOC_ID:
            self._reject(platform, iap_product_id, action, "error", "not an IAP product")

        try:
            snapshot = await self.store.get(IAP_PRODUCTS, iap_product_id)
        except Exception as exc:
            self._reject(platform, iap_product_id, action, "error", str(exc), exc)
        if snapshot is None:
            self._reject(platform, iap_product_id, action, "missing", "IAP product not found")

        # Records without a platform predate multi-platform sync
        owner = IapLinkState.from_document(snapshot.id, snapshot.data).platform or Platform.ANDROID
        if owner != platform:
            self._reject(
                platform, iap_product_id, action, "error", f"IAP product belongs to {owner.value}"
            )

        document = {**patch.to_document(), "updatedAt": to_iso(self.clock())}
        try:
            await self.store.update(IAP_PRODUCTS, iap_product_id, document)
        except ResourceNotFoundError as exc:
            self._reject(platform, iap_product_id, action, "missing", "IAP product not found", exc)
        except Exception as exc:
            self._reject(platform, iap_product_id, action, "error", str(exc), exc)
        metrics.record_link_operation(platform.value, action, "ok")

    @staticmethod
    def _reject(
        platform: Platform,
        iap_product_id: str,
        action: str,
        outcome: str,
        reason: str,
        cause: Exception | None = None,
    ) -> NoReturn:
        metrics.record_link_operation(platform.value, action, outcome)
        raise LinkIntegrityWarning(iap_product_id, platform.value, reason) from cause
