"""
Tests for the IAP reconciler.

Covers create vs update, preservation of link fields across syncs, chunked
commits and chunk failure accounting.
"""

import pytest
from conftest import FIXED_NOW, make_store_product, seed_iap_product

from storefront.db.document_store import IAP_PRODUCTS, SYNC_STATUS_DOC_ID
from storefront.exceptions import TransformError
from storefront.models.api import Platform
from storefront.models.domain import SyncStatus, to_iso
from storefront.services.iap_reconciler import IapReconciler, plan_upsert


class TestPlanUpsert:
    """Tests for plan_upsert."""

    def test_new_record_is_created_unlinked(self):
        write = plan_upsert(make_store_product("pack_a"), existing=False, now=FIXED_NOW)

        assert write.is_new is True
        assert write.document["linkedProductId"] is None
        assert write.document["isLinked"] is False
        assert write.document["createdAt"] == to_iso(FIXED_NOW)
        assert write.document["lastSynced"] == to_iso(FIXED_NOW)

    def test_update_carries_no_link_fields(self):
        write = plan_upsert(make_store_product("pack_a"), existing=True, now=FIXED_NOW)

        assert write.is_new is False
        assert "linkedProductId" not in write.document
        assert "isLinked" not in write.document
        assert "createdAt" not in write.document
        assert write.document["syncError"] is None


class TestReconcile:
    """Tests for IapReconciler.reconcile."""

    @pytest.mark.asyncio
    async def test_creates_new_products(self, store, reconciler):
        summary = await reconciler.reconcile(
            [make_store_product("pack_a"), make_store_product("pack_b")]
        )

        assert summary.total_seen == 2
        assert summary.created == 2
        assert summary.updated == 0
        assert summary.failed == 0
        doc = store.data(IAP_PRODUCTS, "pack_a")
        assert doc["sku"] == "pack_a"
        assert doc["platform"] == "android"
        assert doc["status"] == "active"
        assert doc["prices"] == [{"currency": "USD", "amount": 1.99, "formatted": "USD 1.99"}]
        assert doc["isLinked"] is False

    @pytest.mark.asyncio
    async def test_update_preserves_link_fields(self, store, reconciler):
        """A sync never touches linkedProductId/isLinked on existing records."""
        seed_iap_product(store, "pack_a", linked_product_id="prod-1", createdAt="2020-01-01")

        summary = await reconciler.reconcile(
            [make_store_product("pack_a", name="Renamed", prices=(("EUR", 2.49),))]
        )

        assert summary.updated == 1
        assert summary.created == 0
        doc = store.data(IAP_PRODUCTS, "pack_a")
        assert doc["name"] == "Renamed"
        assert doc["prices"][0]["currency"] == "EUR"
        assert doc["linkedProductId"] == "prod-1"
        assert doc["isLinked"] is True
        assert doc["createdAt"] == "2020-01-01"

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, store, reconciler):
        products = [make_store_product("pack_a"), make_store_product("pack_b")]
        await reconciler.reconcile(products)
        first = {sku: store.data(IAP_PRODUCTS, sku) for sku in ("pack_a", "pack_b")}

        summary = await reconciler.reconcile(products)

        assert summary.created == 0
        assert summary.updated == 2
        for sku, before in first.items():
            after = store.data(IAP_PRODUCTS, sku)
            for key in ("name", "prices", "status", "linkedProductId", "isLinked", "createdAt"):
                assert after[key] == before[key]

    @pytest.mark.asyncio
    async def test_records_missing_from_catalog_are_kept(self, store, reconciler):
        seed_iap_product(store, "retired_pack", linked_product_id="prod-9")

        await reconciler.reconcile([make_store_product("pack_a")])

        assert store.data(IAP_PRODUCTS, "retired_pack")["linkedProductId"] == "prod-9"

    @pytest.mark.asyncio
    async def test_duplicate_sku_keeps_last_definition(self, store, reconciler):
        summary = await reconciler.reconcile(
            [make_store_product("pack_a", name="First"), make_store_product("pack_a", name="Last")]
        )

        assert summary.total_seen == 2
        assert summary.created == 1
        assert store.data(IAP_PRODUCTS, "pack_a")["name"] == "Last"

    @pytest.mark.asyncio
    async def test_rejected_records_count_as_failed(self, reconciler):
        summary = await reconciler.reconcile(
            [make_store_product("pack_a")],
            rejected=[TransformError(None, "missing SKU")],
        )

        assert summary.total_seen == 2
        assert summary.created == 1
        assert summary.failed == 1
        assert "missing SKU" in summary.error_summary

    @pytest.mark.asyncio
    async def test_empty_catalog(self, store, reconciler):
        summary = await reconciler.reconcile([])

        assert (summary.total_seen, summary.created, summary.updated, summary.failed) == (0, 0, 0, 0)
        assert store.commit_attempts == 0


class TestChunking:
    """Tests for chunked commits and chunk failures."""

    @pytest.mark.asyncio
    async def test_writes_are_chunked(self, store, clock):
        reconciler = IapReconciler(store, batch_size=2, clock=clock)

        summary = await reconciler.reconcile([make_store_product(f"sku_{i}") for i in range(5)])

        assert summary.created == 5
        assert store.committed_batch_sizes == [2, 2, 1]

    def test_batch_size_capped_at_store_limit(self, store):
        assert IapReconciler(store, batch_size=10_000).batch_size == 500
        assert IapReconciler(store, batch_size=0).batch_size == 1

    @pytest.mark.asyncio
    async def test_rejected_chunk_is_retried_once(self, store, clock):
        store.fail_next_commits = 1
        reconciler = IapReconciler(store, batch_size=10, clock=clock)

        summary = await reconciler.reconcile([make_store_product("pack_a")])

        assert summary.created == 1
        assert summary.failed == 0
        assert store.commit_attempts == 2

    @pytest.mark.asyncio
    async def test_chunk_failing_twice_is_counted_failed_and_later_chunks_proceed(
        self, store, clock
    ):
        store.fail_next_commits = 2
        reconciler = IapReconciler(store, batch_size=2, clock=clock)

        summary = await reconciler.reconcile([make_store_product(f"sku_{i}") for i in range(4)])

        assert summary.failed == 2
        assert summary.created == 2
        assert store.ids(IAP_PRODUCTS) == {"sku_2", "sku_3"}
        assert summary.error_summary is not None

    @pytest.mark.asyncio
    async def test_lookup_failure_counts_single_product(self, store, reconciler):
        store.failing_get_ids.add("pack_b")

        summary = await reconciler.reconcile(
            [make_store_product("pack_a"), make_store_product("pack_b")]
        )

        assert summary.created == 1
        assert summary.failed == 1
        assert store.ids(IAP_PRODUCTS) == {"pack_a"}


class TestWriteSyncStatus:
    """Tests for the sync-status marker."""

    @pytest.mark.asyncio
    async def test_marker_written_to_sentinel(self, store, reconciler):
        await reconciler.write_sync_status(
            SyncStatus(last_sync=FIXED_NOW, success=True, item_count=3, created=1, updated=2)
        )

        marker = store.data(IAP_PRODUCTS, SYNC_STATUS_DOC_ID)
        assert marker == {
            "lastSync": to_iso(FIXED_NOW),
            "success": True,
            "itemCount": 3,
            "created": 1,
            "updated": 2,
            "failed": 0,
            "error": None,
            "platform": Platform.ANDROID.value,
        }
