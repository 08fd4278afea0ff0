"""
Tests for domain models.
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from storefront.models.api import AdminRole, IapStatus, Platform
from storefront.models.domain import (
    LINK_FIELDS,
    SYNC_FIELDS,
    AdminUser,
    IapLinkState,
    LinkMaintenanceReport,
    LinkOutcome,
    LinkPatch,
    Page,
    PageCursor,
    PriceEntry,
    ProductIapRefs,
    ReconcileSummary,
    StoreProduct,
    SyncPatch,
    SyncResult,
    SyncStatus,
    parse_iso,
    to_iso,
)


class TestTimestamps:
    def test_to_iso_is_utc_with_microseconds(self):
        value = datetime(2026, 10, 18, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert to_iso(value) == "2026-10-18T12:00:00.000000+00:00"

    def test_to_iso_treats_naive_as_utc(self):
        assert to_iso(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000000+00:00"

    def test_parse_iso_round_trip(self):
        value = datetime(2026, 10, 18, 12, 30, 15, 123456, tzinfo=UTC)

        assert parse_iso(to_iso(value)) == value

    @pytest.mark.parametrize("value", [None, ""])
    def test_parse_iso_missing(self, value):
        assert parse_iso(value) is None


class TestPriceEntry:
    def test_rejects_bad_currency(self):
        with pytest.raises(ValueError, match="currency"):
            PriceEntry(currency="US", amount=1.0, formatted="US 1.00")

    def test_rejects_negative_amount(self):
        with pytest.raises(ValueError, match="negative"):
            PriceEntry(currency="USD", amount=-1.0, formatted="USD -1.00")


class TestStoreProduct:
    def test_requires_sku(self):
        with pytest.raises(ValueError, match="SKU"):
            StoreProduct(
                platform=Platform.ANDROID,
                sku="",
                name="",
                description="",
                prices=(),
                status=IapStatus.ACTIVE,
            )


class TestFieldOwnership:
    """The two IapProduct writers never serialize each other's fields."""

    def test_field_sets_are_disjoint(self):
        assert not SYNC_FIELDS & LINK_FIELDS

    def test_sync_patch_writes_only_sync_fields(self):
        product = StoreProduct(
            platform=Platform.ANDROID,
            sku="coins_100",
            name="100 Coins",
            description="",
            prices=(PriceEntry("USD", 0.99, "USD 0.99"),),
            status=IapStatus.ACTIVE,
        )
        patch = SyncPatch.from_store_product(product, datetime(2026, 10, 18, tzinfo=UTC))

        doc = patch.to_document()

        assert set(doc) == SYNC_FIELDS
        assert doc["prices"] == [{"currency": "USD", "amount": 0.99, "formatted": "USD 0.99"}]
        assert doc["syncError"] is None

    def test_link_patch_writes_only_link_fields(self):
        assert set(LinkPatch.linked_to("p1").to_document()) == LINK_FIELDS

    def test_link_patch_derives_is_linked(self):
        assert LinkPatch.linked_to("p1").to_document() == {
            "linkedProductId": "p1",
            "isLinked": True,
        }
        assert LinkPatch.unlinked().to_document() == {"linkedProductId": None, "isLinked": False}

    def test_link_patch_rejects_empty_product(self):
        with pytest.raises(ValueError):
            LinkPatch.linked_to("")


class TestIapLinkState:
    def test_consistent_link(self):
        state = IapLinkState.from_document(
            "coins_100", {"platform": "android", "linkedProductId": "p1", "isLinked": True}
        )

        assert state.platform == Platform.ANDROID
        assert state.is_consistent

    def test_flag_without_holder_is_inconsistent(self):
        state = IapLinkState.from_document("coins_100", {"isLinked": True, "linkedProductId": ""})

        assert state.linked_product_id is None
        assert not state.is_consistent

    def test_unknown_platform(self):
        assert IapLinkState.from_document("x", {"platform": "web"}).platform is None


class TestProductIapRefs:
    def test_reads_both_platforms(self):
        refs = ProductIapRefs.from_document(
            {"iapProductIdAndroid": "coins_100", "iapProductIdIOS": "ios.coins"}
        )

        assert refs.for_platform(Platform.ANDROID) == "coins_100"
        assert refs.for_platform(Platform.IOS) == "ios.coins"

    def test_deleted_product_holds_nothing(self):
        refs = ProductIapRefs.from_document(None)

        assert refs.android is None
        assert refs.ios is None

    def test_blank_reference_is_none(self):
        assert ProductIapRefs.from_document({"iapProductIdAndroid": ""}).android is None


class TestReconcileSummary:
    def test_no_errors(self):
        assert ReconcileSummary().error_summary is None

    def test_truncates_errors(self):
        summary = ReconcileSummary(errors=[f"e{i}" for i in range(7)])

        assert summary.error_summary == "e0; e1; e2; e3; e4 (+2 more)"


class TestSyncResults:
    def test_status_document(self):
        marker = SyncStatus(
            last_sync=datetime(2026, 10, 18, 12, tzinfo=UTC),
            success=False,
            item_count=0,
            error="auth failed",
        )

        doc = marker.to_document()

        assert doc["lastSync"] == "2026-10-18T12:00:00.000000+00:00"
        assert doc["success"] is False
        assert doc["error"] == "auth failed"
        assert doc["platform"] == "android"

    def test_failed_result_response(self):
        assert SyncResult(success=False, error="boom").to_response() == {
            "success": False,
            "error": "boom",
        }

    def test_success_result_response(self):
        response = SyncResult(success=True, total=3, created=1, updated=2).to_response()

        assert response == {"success": True, "total": 3, "created": 1, "updated": 2, "failed": 0}


class TestLinkMaintenanceReport:
    def test_ok_when_no_warnings(self):
        report = LinkMaintenanceReport(
            product_id="p1",
            outcomes=(LinkOutcome(Platform.ANDROID, linked="a"), LinkOutcome(Platform.IOS)),
        )

        assert report.ok
        assert report.for_platform(Platform.ANDROID).linked == "a"

    def test_not_ok_with_warning(self):
        report = LinkMaintenanceReport(
            product_id="p1",
            outcomes=(LinkOutcome(Platform.IOS, warnings=("missing",)),),
        )

        assert not report.ok
        with pytest.raises(KeyError):
            report.for_platform(Platform.ANDROID)


class TestPagination:
    def test_cursor_round_trip(self):
        cursor = PageCursor(sort_value="2026-10-18T12:00:00.000000+00:00", doc_id="p1")

        assert PageCursor.decode(cursor.encode()) == cursor

    @pytest.mark.parametrize("token", ["not-base64!!", "e30=", "bnVsbA=="])
    def test_invalid_cursor(self, token):
        with pytest.raises(ValueError, match="Invalid cursor"):
            PageCursor.decode(token)

    def test_page_next_token(self):
        assert Page(items=[], has_more=False).next_token is None
        cursor = PageCursor(sort_value=1, doc_id="x")
        assert Page(items=[], has_more=True, next_cursor=cursor).next_token == cursor.encode()


class TestAdminUser:
    def test_document_round_trip(self):
        admin = AdminUser(
            email="ops@example.com",
            name="Ops",
            role=AdminRole.ADMIN,
            created_at=datetime(2026, 10, 18, tzinfo=UTC),
        )

        restored = AdminUser.from_document(admin.email, admin.to_document())

        assert restored == admin
        assert restored.is_admin

    def test_unknown_role_is_viewer(self):
        admin = AdminUser.from_document("a@example.com", {"role": "owner"})

        assert admin.role == AdminRole.VIEWER
        assert admin.name == "a"
        assert admin.is_active
