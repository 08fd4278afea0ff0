"""
FastAPI Dependencies - Document store and service wiring.

Routes receive services through these providers; tests replace them with
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from storefront.config import get_settings
from storefront.db.document_store import DocumentStore
from storefront.db.session import create_document_store
from storefront.services.categories import CategoryService
from storefront.services.dashboard import DashboardService
from storefront.services.iap_catalog import IapCatalogService
from storefront.services.iap_link_audit import IapLinkAuditor
from storefront.services.iap_links import IapLinkMaintainer
from storefront.services.iap_sync import IapSyncJob, build_sync_job
from storefront.services.products import ProductService
from storefront.services.purchases import PurchaseService
from storefront.services.users import UserService


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    """Process-wide document store over the configured database."""
    return create_document_store()


def get_link_maintainer(store: DocumentStore = Depends(get_document_store)) -> IapLinkMaintainer:
    return IapLinkMaintainer(store)


def get_product_service(
    store: DocumentStore = Depends(get_document_store),
    link_maintainer: IapLinkMaintainer = Depends(get_link_maintainer),
) -> ProductService:
    return ProductService(
        store,
        link_maintainer,
        preferred_currencies=get_settings().preferred_currency_list,
    )


def get_category_service(store: DocumentStore = Depends(get_document_store)) -> CategoryService:
    return CategoryService(store)


def get_iap_catalog_service(
    store: DocumentStore = Depends(get_document_store),
) -> IapCatalogService:
    return IapCatalogService(store)


def get_purchase_service(store: DocumentStore = Depends(get_document_store)) -> PurchaseService:
    return PurchaseService(store)


def get_user_service(store: DocumentStore = Depends(get_document_store)) -> UserService:
    return UserService(store)


def get_dashboard_service(store: DocumentStore = Depends(get_document_store)) -> DashboardService:
    return DashboardService(store)


def get_sync_job(store: DocumentStore = Depends(get_document_store)) -> IapSyncJob:
    return build_sync_job(store, get_settings())


def get_link_auditor(store: DocumentStore = Depends(get_document_store)) -> IapLinkAuditor:
    return IapLinkAuditor(store)
