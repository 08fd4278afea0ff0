"""
API Models - Pydantic models for request/response validation.

Field names are snake_case in Python and camelCase on the wire, matching the
stored document schema that other tooling reads.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Platform(str, Enum):
    """App store platform an IAP product belongs to."""

    ANDROID = "android"
    IOS = "ios"


class IapStatus(str, Enum):
    """Store-reported IAP product status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class AdminRole(str, Enum):
    """Admin authorization role."""

    ADMIN = "admin"
    VIEWER = "viewer"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Self:
        """Build from a stored document; unknown fields are ignored."""
        return cls.model_validate({**data, "id": doc_id})


# ============================================================================
# IAP Products
# ============================================================================


class PriceResponse(CamelModel):
    """One store price entry."""

    currency: str
    amount: float
    formatted: str


class IapProductResponse(CamelModel):
    """IAP product mirrored from an app store."""

    id: str
    platform: Platform
    sku: str
    name: str
    description: str = ""
    prices: list[PriceResponse] = Field(default_factory=list)
    status: IapStatus = IapStatus.INACTIVE
    linked_product_id: str | None = None
    is_linked: bool = False
    last_synced: datetime | None = None
    sync_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class IapProductListResponse(CamelModel):
    """Paginated IAP product list."""

    items: list[IapProductResponse]
    has_more: bool
    next_cursor: str | None = None


class SyncStatusResponse(CamelModel):
    """Last catalog sync marker."""

    last_sync: datetime | None = None
    success: bool
    item_count: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    error: str | None = None
    platform: Platform = Platform.ANDROID


class SyncTriggerResponse(CamelModel):
    """Result of a manually triggered catalog sync."""

    success: bool
    message: str
    total: int
    created: int
    updated: int
    failed: int = 0


class LinkAuditResponse(CamelModel):
    """Result of an IAP link audit pass."""

    checked_iap_products: int
    checked_products: int
    cleared: int
    relinked: int


# ============================================================================
# Products
# ============================================================================


class ProductWrite(CamelModel):
    """Product create/update payload, validated at the admin boundary."""

    title: str
    description: str
    category_id: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)
    iap_product_id_android: str | None = None
    iap_product_id_ios: str | None = Field(default=None, alias="iapProductIdIOS")
    is_free: bool = False
    is_active: bool = True
    is_featured: bool = False

    # Opaque asset references
    image_url: str = ""
    image_path: str = ""
    file_url: str = ""
    file_path: str = ""
    file_name: str = ""
    file_size: int = Field(default=0, ge=0)
    file_type: str = ""

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        if len(value) < 3:
            raise ValueError("Title must be at least 3 characters")
        return value

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Description is required")
        if len(value) < 10:
            raise ValueError("Description must be at least 10 characters")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value: object) -> object:
        """Accept a comma-separated string as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            return [str(tag).strip() for tag in value if str(tag).strip()]
        return value

    @field_validator("iap_product_id_android", "iap_product_id_ios", mode="before")
    @classmethod
    def blank_reference_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        # Store product IDs start with a letter or digit; "_" prefixes internal records
        if isinstance(value, str) and value.strip().startswith("_"):
            raise ValueError(f"Not an IAP product ID: {value}")
        return value

    @model_validator(mode="after")
    def free_products_hold_no_iap(self) -> "ProductWrite":
        """A free product never references IAP products."""
        if self.is_free:
            self.iap_product_id_android = None
            self.iap_product_id_ios = None
        return self


class ProductResponse(CamelModel):
    """Catalog product."""

    id: str
    title: str
    description: str
    category_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    iap_product_id_android: str | None = None
    iap_product_id_ios: str | None = Field(default=None, alias="iapProductIdIOS")
    is_free: bool = False
    display_price: float | None = None
    display_currency: str | None = None
    is_active: bool = True
    is_featured: bool = False
    image_url: str = ""
    image_path: str = ""
    file_url: str = ""
    file_path: str = ""
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductListResponse(CamelModel):
    """Paginated product list."""

    items: list[ProductResponse]
    has_more: bool
    next_cursor: str | None = None


# ============================================================================
# Categories
# ============================================================================


class CategoryWrite(CamelModel):
    """Category create/update payload."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    order: int = 0
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class CategoryResponse(CamelModel):
    """Product category."""

    id: str
    name: str
    description: str = ""
    order: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CategoryListResponse(CamelModel):
    """Paginated category list."""

    items: list[CategoryResponse]
    has_more: bool
    next_cursor: str | None = None


# ============================================================================
# Purchases
# ============================================================================


class PurchaseResponse(CamelModel):
    """Purchase / transaction record."""

    id: str
    user_id: str | None = None
    user_email: str = ""
    user_name: str = ""
    licensee_name: str = ""
    product_id: str | None = None
    product_title: str = ""
    product_category: str = ""
    product_image_url: str = ""
    product_price: float = 0.0
    product_price_formatted: str = ""
    iap_product_id: str | None = None
    iap_receipt: str | None = None
    platform: str | None = None
    transaction_id: str | None = None
    status: str = "pending"
    purchase_date: datetime | None = None
    refund_date: datetime | None = None
    refund_reason: str | None = None


class PurchaseUpdate(CamelModel):
    """Admin-editable purchase fields."""

    status: str | None = Field(default=None, min_length=1, max_length=50)
    refund_date: datetime | None = None
    refund_reason: str | None = None


class PurchaseListResponse(CamelModel):
    """Paginated purchase list."""

    items: list[PurchaseResponse]
    has_more: bool
    next_cursor: str | None = None


class PurchaseStatsResponse(CamelModel):
    """Completed purchase aggregates."""

    total_purchases: int
    total_revenue: float
    average_order_value: float


# ============================================================================
# Users
# ============================================================================


class UserResponse(CamelModel):
    """Storefront customer."""

    id: str
    email: str = ""
    display_name: str = ""
    photo_url: str | None = Field(default=None, alias="photoURL")
    is_active: bool = True
    total_purchases: int = 0
    total_spent: float = 0.0
    created_at: datetime | None = None
    last_login: datetime | None = None


class UserUpdate(CamelModel):
    """Admin-editable user fields."""

    display_name: str | None = None
    is_active: bool | None = None


class UserListResponse(CamelModel):
    """Paginated user list."""

    items: list[UserResponse]
    has_more: bool
    next_cursor: str | None = None


# ============================================================================
# Dashboard
# ============================================================================


class DashboardStatsResponse(CamelModel):
    """Dashboard counters."""

    total_products: int
    active_products: int
    total_categories: int
    total_users: int
    total_purchases: int
    total_revenue: float
