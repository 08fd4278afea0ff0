"""
Tests for the manual IAP sync route.
"""

import pytest
from conftest import make_store_product
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_document_store, get_sync_job
from storefront.db.document_store import IAP_PRODUCTS, SYNC_STATUS_DOC_ID
from storefront.exceptions import AuthError
from storefront.models.api import Platform
from storefront.services.google_play_catalog import CatalogFetchResult
from storefront.services.iap_reconciler import IapReconciler
from storefront.services.iap_sync import IapSyncJob


class StubFetcher:
    platform = Platform.ANDROID

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def fetch_all(self):
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def use_fetcher(app, store, clock):
    """Override the sync job with one that uses the given fetcher."""

    def _use(fetcher: StubFetcher) -> None:
        job = IapSyncJob(lambda: fetcher, IapReconciler(store, clock=clock), clock=clock)
        app.dependency_overrides[get_sync_job] = lambda: job

    return _use


class TestTriggerSync:
    """Tests for GET /v1/iap/sync."""

    def test_success(self, admin_client, store, use_fetcher):
        use_fetcher(
            StubFetcher(
                CatalogFetchResult(
                    products=(make_store_product("pack_a"), make_store_product("pack_b")),
                    rejected=(),
                )
            )
        )

        response = admin_client.get("/v1/iap/sync")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Synced 2 products",
            "total": 2,
            "created": 2,
            "updated": 0,
            "failed": 0,
        }
        assert {"pack_a", "pack_b"} <= store.ids(IAP_PRODUCTS)

    def test_failure_returns_500_with_error(self, admin_client, store, use_fetcher):
        use_fetcher(StubFetcher(error=AuthError("Google Play rejected credentials (403)")))

        response = admin_client.get("/v1/iap/sync")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "rejected credentials" in body["error"]
        assert store.data(IAP_PRODUCTS, SYNC_STATUS_DOC_ID)["success"] is False

    def test_viewer_forbidden(self, viewer_client, store, use_fetcher):
        use_fetcher(StubFetcher(CatalogFetchResult(products=(), rejected=())))

        response = viewer_client.get("/v1/iap/sync")

        assert response.status_code == 403
        assert store.data(IAP_PRODUCTS, SYNC_STATUS_DOC_ID) is None

    def test_requires_authentication(self, app, store, use_fetcher):
        app.dependency_overrides[get_document_store] = lambda: store
        use_fetcher(StubFetcher(CatalogFetchResult(products=(), rejected=())))
        try:
            response = TestClient(app).get("/v1/iap/sync")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
