"""
Admin API routes for managing the storefront catalog.

Protected by JWT authentication.
Read routes allow the viewer role; writes and job triggers require admin.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from storefront.api.admin_dependencies import get_current_admin, require_admin_role
from storefront.api.dependencies import (
    get_category_service,
    get_dashboard_service,
    get_iap_catalog_service,
    get_link_auditor,
    get_product_service,
    get_purchase_service,
    get_user_service,
)
from storefront.models.api import (
    CategoryListResponse,
    CategoryResponse,
    CategoryWrite,
    DashboardStatsResponse,
    IapProductListResponse,
    IapProductResponse,
    LinkAuditResponse,
    Platform,
    ProductListResponse,
    ProductResponse,
    ProductWrite,
    PurchaseListResponse,
    PurchaseResponse,
    PurchaseStatsResponse,
    PurchaseUpdate,
    SyncStatusResponse,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from storefront.models.domain import AdminUser, PageCursor
from storefront.services.categories import CategoryService
from storefront.services.dashboard import DashboardService
from storefront.services.iap_catalog import IapCatalogService
from storefront.services.iap_link_audit import IapLinkAuditor
from storefront.services.products import ProductService
from storefront.services.purchases import PurchaseFilters, PurchaseService
from storefront.services.users import UserService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def parse_cursor(cursor: str | None) -> PageCursor | None:
    """Decode a page token from the query string."""
    if not cursor:
        return None
    try:
        return PageCursor.decode(cursor)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid cursor",
        ) from e


# ============================================================================
# IAP Products
# ============================================================================


@router.get("/iap-products", response_model=IapProductListResponse)
async def list_iap_products(
    platform: Platform | None = Query(None, description="Filter by platform"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None, description="Token from the previous page"),
    service: IapCatalogService = Depends(get_iap_catalog_service),
    admin: AdminUser = Depends(get_current_admin),
) -> IapProductListResponse:
    """
    List IAP products mirrored from the app stores, most recently synced first.

    Accessible by: admin, viewer
    """
    page = await service.list_iap_products(platform, page_size, parse_cursor(cursor))
    return IapProductListResponse(
        items=page.items, has_more=page.has_more, next_cursor=page.next_token
    )


@router.get("/iap-products/sync-status", response_model=SyncStatusResponse)
async def get_sync_status(
    service: IapCatalogService = Depends(get_iap_catalog_service),
    admin: AdminUser = Depends(get_current_admin),
) -> SyncStatusResponse:
    """
    Get the last catalog sync marker.

    Accessible by: admin, viewer
    """
    sync_status = await service.get_sync_status()
    if sync_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No sync has run yet",
        )
    return sync_status


@router.get("/iap-products/{sku}", response_model=IapProductResponse)
async def get_iap_product(
    sku: str,
    service: IapCatalogService = Depends(get_iap_catalog_service),
    admin: AdminUser = Depends(get_current_admin),
) -> IapProductResponse:
    return await service.get_iap_product(sku)


@router.post("/iap-links/audit", response_model=LinkAuditResponse)
async def audit_iap_links(
    auditor: IapLinkAuditor = Depends(get_link_auditor),
    admin: AdminUser = Depends(require_admin_role),
) -> LinkAuditResponse:
    """
    Scan products and IAP products and repair inconsistent links.

    Accessible by: admin only
    """
    summary = await auditor.audit()
    logger.info(
        "admin_iap_link_audit",
        admin_email=admin.email,
        cleared=summary.cleared,
        relinked=summary.relinked,
    )
    return LinkAuditResponse(
        checked_iap_products=summary.checked_iap_products,
        checked_products=summary.checked_products,
        cleared=summary.cleared,
        relinked=summary.relinked,
    )


# ============================================================================
# Products
# ============================================================================


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None),
    service: ProductService = Depends(get_product_service),
    admin: AdminUser = Depends(get_current_admin),
) -> ProductListResponse:
    page = await service.list_products(page_size, parse_cursor(cursor))
    return ProductListResponse(items=page.items, has_more=page.has_more, next_cursor=page.next_token)


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductWrite,
    service: ProductService = Depends(get_product_service),
    admin: AdminUser = Depends(require_admin_role),
) -> ProductResponse:
    """
    Create a product and link the IAP products it references.

    Accessible by: admin only
    """
    product = await service.create_product(data)
    logger.info("admin_product_created", admin_email=admin.email, product_id=product.id)
    return product


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
    admin: AdminUser = Depends(get_current_admin),
) -> ProductResponse:
    return await service.get_product(product_id)


@router.put("/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    data: ProductWrite,
    service: ProductService = Depends(get_product_service),
    admin: AdminUser = Depends(require_admin_role),
) -> ProductResponse:
    """
    Update a product. IAP links it no longer references are released.

    Accessible by: admin only
    """
    product = await service.update_product(product_id, data)
    logger.info("admin_product_updated", admin_email=admin.email, product_id=product_id)
    return product


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
    admin: AdminUser = Depends(require_admin_role),
) -> None:
    """
    Delete a product and release both of its IAP links.

    Accessible by: admin only
    """
    await service.delete_product(product_id)
    logger.info("admin_product_deleted", admin_email=admin.email, product_id=product_id)


# ============================================================================
# Categories
# ============================================================================


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories(
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None),
    service: CategoryService = Depends(get_category_service),
    admin: AdminUser = Depends(get_current_admin),
) -> CategoryListResponse:
    page = await service.list_categories(page_size, parse_cursor(cursor))
    return CategoryListResponse(
        items=page.items, has_more=page.has_more, next_cursor=page.next_token
    )


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryWrite,
    service: CategoryService = Depends(get_category_service),
    admin: AdminUser = Depends(require_admin_role),
) -> CategoryResponse:
    return await service.create_category(data)


@router.get("/categories/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: str,
    service: CategoryService = Depends(get_category_service),
    admin: AdminUser = Depends(get_current_admin),
) -> CategoryResponse:
    return await service.get_category(category_id)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryWrite,
    service: CategoryService = Depends(get_category_service),
    admin: AdminUser = Depends(require_admin_role),
) -> CategoryResponse:
    return await service.update_category(category_id, data)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    service: CategoryService = Depends(get_category_service),
    admin: AdminUser = Depends(require_admin_role),
) -> None:
    await service.delete_category(category_id)
    logger.info("admin_category_deleted", admin_email=admin.email, category_id=category_id)


# ============================================================================
# Purchases
# ============================================================================


@router.get("/purchases", response_model=PurchaseListResponse)
async def list_purchases(
    user_id: str | None = Query(None, alias="userId"),
    product_id: str | None = Query(None, alias="productId"),
    start_date: date | None = Query(None, alias="startDate", description="Inclusive, YYYY-MM-DD"),
    end_date: date | None = Query(None, alias="endDate", description="Inclusive, YYYY-MM-DD"),
    status_filter: str | None = Query(None, alias="status", description="'All' for no filter"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None),
    service: PurchaseService = Depends(get_purchase_service),
    admin: AdminUser = Depends(get_current_admin),
) -> PurchaseListResponse:
    """
    List purchases, most recent first.

    Accessible by: admin, viewer
    """
    filters = PurchaseFilters(
        user_id=user_id,
        product_id=product_id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
    )
    page = await service.list_purchases(filters, page_size, parse_cursor(cursor))
    return PurchaseListResponse(
        items=page.items, has_more=page.has_more, next_cursor=page.next_token
    )


@router.get("/purchases/stats", response_model=PurchaseStatsResponse)
async def get_purchase_stats(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    service: PurchaseService = Depends(get_purchase_service),
    admin: AdminUser = Depends(get_current_admin),
) -> PurchaseStatsResponse:
    return await service.get_stats(start_date, end_date)


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    purchase_id: str,
    service: PurchaseService = Depends(get_purchase_service),
    admin: AdminUser = Depends(get_current_admin),
) -> PurchaseResponse:
    return await service.get_purchase(purchase_id)


@router.patch("/purchases/{purchase_id}", response_model=PurchaseResponse)
async def update_purchase(
    purchase_id: str,
    data: PurchaseUpdate,
    service: PurchaseService = Depends(get_purchase_service),
    admin: AdminUser = Depends(require_admin_role),
) -> PurchaseResponse:
    """
    Update purchase status or refund details.

    Accessible by: admin only
    """
    purchase = await service.update_purchase(purchase_id, data)
    logger.info(
        "admin_purchase_updated",
        admin_email=admin.email,
        purchase_id=purchase_id,
        status=purchase.status,
    )
    return purchase


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(None),
    service: UserService = Depends(get_user_service),
    admin: AdminUser = Depends(get_current_admin),
) -> UserListResponse:
    """
    List storefront users, newest first.

    Backfills the users collection from purchases on first use.
    Accessible by: admin, viewer
    """
    page = await service.list_users(page_size, parse_cursor(cursor))
    return UserListResponse(items=page.items, has_more=page.has_more, next_cursor=page.next_token)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    service: UserService = Depends(get_user_service),
    admin: AdminUser = Depends(get_current_admin),
) -> UserResponse:
    return await service.get_user(user_id)


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    service: UserService = Depends(get_user_service),
    admin: AdminUser = Depends(require_admin_role),
) -> UserResponse:
    user = await service.update_user(user_id, data)
    logger.info("admin_user_updated", admin_email=admin.email, user_id=user_id)
    return user


@router.get("/users/{user_id}/purchases", response_model=list[PurchaseResponse])
async def list_user_purchases(
    user_id: str,
    service: UserService = Depends(get_user_service),
    admin: AdminUser = Depends(get_current_admin),
) -> list[PurchaseResponse]:
    return await service.list_user_purchases(user_id)


# ============================================================================
# Dashboard
# ============================================================================


@router.get("/dashboard/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    service: DashboardService = Depends(get_dashboard_service),
    admin: AdminUser = Depends(get_current_admin),
) -> DashboardStatsResponse:
    return await service.get_stats()
