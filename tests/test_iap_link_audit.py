"""
Tests for the IAP link auditor.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FIXED_NOW, seed_iap_product, seed_product

from storefront.db.document_store import IAP_PRODUCTS, SYNC_STATUS_DOC_ID
from storefront.exceptions import DocumentStoreError
from storefront.models.api import Platform
from storefront.services.iap_link_audit import IapLinkAuditor, run_scheduled_link_audit


def link_of(store, sku: str) -> tuple[str | None, bool]:
    data = store.data(IAP_PRODUCTS, sku)
    return data["linkedProductId"], data["isLinked"]


@pytest.fixture
def auditor(store, clock) -> IapLinkAuditor:
    return IapLinkAuditor(store, clock=clock)


class TestAuditConsistentState:
    """Tests for data that already satisfies the link invariant."""

    @pytest.mark.asyncio
    async def test_consistent_links_untouched(self, store, auditor):
        seed_product(store, "prod-1", android="pack_a")
        seed_iap_product(store, "pack_a", linked_product_id="prod-1")
        seed_iap_product(store, "pack_free")

        summary = await auditor.audit()

        assert (summary.cleared, summary.relinked) == (0, 0)
        assert summary.checked_products == 1
        assert summary.checked_iap_products == 2
        assert store.commit_attempts == 0

    @pytest.mark.asyncio
    async def test_sync_marker_is_ignored(self, store, auditor):
        store.seed(IAP_PRODUCTS, SYNC_STATUS_DOC_ID, {"success": True, "itemCount": 0})

        summary = await auditor.audit()

        assert summary.checked_iap_products == 0
        assert "isLinked" not in store.data(IAP_PRODUCTS, SYNC_STATUS_DOC_ID)


class TestAuditRepairs:
    """Tests for repaired links."""

    @pytest.mark.asyncio
    async def test_orphaned_link_is_cleared(self, store, auditor):
        seed_product(store, "prod-1", android=None)
        seed_iap_product(store, "pack_a", linked_product_id="prod-1")

        summary = await auditor.audit()

        assert summary.cleared == 1
        assert link_of(store, "pack_a") == (None, False)

    @pytest.mark.asyncio
    async def test_link_to_deleted_product_is_cleared(self, store, auditor):
        seed_iap_product(store, "pack_a", linked_product_id="prod-deleted")

        summary = await auditor.audit()

        assert summary.cleared == 1
        assert link_of(store, "pack_a") == (None, False)

    @pytest.mark.asyncio
    async def test_inconsistent_flag_is_cleared(self, store, auditor):
        seed_iap_product(store, "pack_a", linked_product_id=None, isLinked=True)

        summary = await auditor.audit()

        assert summary.cleared == 1
        assert link_of(store, "pack_a") == (None, False)

    @pytest.mark.asyncio
    async def test_unlinked_claim_is_relinked(self, store, auditor):
        """Repairs the state left by a release-after-reclaim race."""
        seed_product(store, "prod-b", android="pack_a")
        seed_iap_product(store, "pack_a", linked_product_id=None)

        summary = await auditor.audit()

        assert summary.relinked == 1
        assert link_of(store, "pack_a") == ("prod-b", True)

    @pytest.mark.asyncio
    async def test_latest_claimant_wins(self, store, auditor):
        seed_product(store, "prod-old", android="pack_a", updated_at=FIXED_NOW)
        seed_product(
            store, "prod-new", android="pack_a", updated_at=FIXED_NOW + timedelta(minutes=5)
        )
        seed_iap_product(store, "pack_a", linked_product_id="prod-gone")

        await auditor.audit()

        assert link_of(store, "pack_a") == ("prod-new", True)

    @pytest.mark.asyncio
    async def test_valid_holder_among_claimants_is_kept(self, store, auditor):
        seed_product(store, "prod-old", android="pack_a", updated_at=FIXED_NOW)
        seed_product(
            store, "prod-new", android="pack_a", updated_at=FIXED_NOW + timedelta(minutes=5)
        )
        seed_iap_product(store, "pack_a", linked_product_id="prod-old")

        summary = await auditor.audit()

        assert summary.relinked == 0
        assert link_of(store, "pack_a") == ("prod-old", True)

    @pytest.mark.asyncio
    async def test_free_products_hold_no_claims(self, store, auditor):
        seed_product(store, "prod-1", android="pack_a", isFree=True)
        seed_iap_product(store, "pack_a", linked_product_id="prod-1")

        summary = await auditor.audit()

        assert summary.cleared == 1
        assert link_of(store, "pack_a") == (None, False)

    @pytest.mark.asyncio
    async def test_claim_must_match_platform(self, store, auditor):
        seed_product(store, "prod-1", ios="pack_a")
        seed_iap_product(store, "pack_a", linked_product_id="prod-1", platform=Platform.ANDROID)

        summary = await auditor.audit()

        assert summary.cleared == 1

    @pytest.mark.asyncio
    async def test_missing_platform_treated_as_android(self, store, auditor):
        seed_product(store, "prod-1", android="pack_legacy")
        seed_iap_product(store, "pack_legacy", linked_product_id=None, platform=Platform.ANDROID)
        del store.collections[IAP_PRODUCTS]["pack_legacy"]["platform"]

        summary = await auditor.audit()

        assert summary.relinked == 1
        assert link_of(store, "pack_legacy") == ("prod-1", True)

    @pytest.mark.asyncio
    async def test_dangling_claim_creates_nothing(self, store, auditor):
        seed_product(store, "prod-1", android="pack_missing")

        summary = await auditor.audit()

        assert (summary.cleared, summary.relinked) == (0, 0)
        assert "pack_missing" not in store.ids(IAP_PRODUCTS)

    @pytest.mark.asyncio
    async def test_rejected_batch_is_not_counted(self, store, auditor):
        seed_iap_product(store, "pack_a", linked_product_id="prod-gone")
        store.fail_next_commits = 1

        summary = await auditor.audit()

        assert summary.cleared == 0
        assert link_of(store, "pack_a") == ("prod-gone", True)

    @pytest.mark.asyncio
    async def test_audit_is_idempotent(self, store, auditor):
        seed_product(store, "prod-b", android="pack_a")
        seed_iap_product(store, "pack_a", linked_product_id="prod-a")
        await auditor.audit()

        summary = await auditor.audit()

        assert (summary.cleared, summary.relinked) == (0, 0)


class TestScheduledLinkAudit:
    """Tests for the scheduler entry point."""

    @pytest.mark.asyncio
    async def test_returns_counters(self, store):
        seed_iap_product(store, "pack_a", linked_product_id="prod-gone")

        with patch("storefront.services.iap_link_audit.create_document_store", return_value=store):
            result = await run_scheduled_link_audit()

        assert result["cleared"] == 1
        assert link_of(store, "pack_a") == (None, False)

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self, store):
        with (
            patch("storefront.services.iap_link_audit.create_document_store", return_value=store),
            patch.object(
                IapLinkAuditor, "audit", AsyncMock(side_effect=DocumentStoreError("db gone"))
            ),
        ):
            result = await run_scheduled_link_audit()

        assert result == {"error": "Document store error: db gone"}
