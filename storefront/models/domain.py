"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
Documents are only built at the store boundary through each model's
``to_document`` method.

IapProduct documents have two writers. The reconciler owns the store-origin
fields (``SyncPatch``) and the link maintainer owns the link fields
(``LinkPatch``). Each patch serializes only its own field set.
"""

import base64
import binascii
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from storefront.models.api import AdminRole, IapStatus, Platform

T = TypeVar("T")

Clock = Callable[[], datetime]

# IapProduct fields owned by each writer
SYNC_FIELDS = frozenset(
    {"platform", "sku", "name", "description", "prices", "status", "lastSynced", "syncError"}
)
LINK_FIELDS = frozenset({"linkedProductId", "isLinked"})

# Product fields referencing IapProduct keys, per platform
PRODUCT_IAP_FIELDS: dict[Platform, str] = {
    Platform.ANDROID: "iapProductIdAndroid",
    Platform.IOS: "iapProductIdIOS",
}


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Serialize a timestamp as sortable ISO-8601 UTC text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_iso(value: Any) -> datetime | None:
    """Parse a stored timestamp, tolerating missing values."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


# ============================================================================
# Store catalog
# ============================================================================


@dataclass(frozen=True)
class PriceEntry:
    """One price for one currency as reported by the store."""

    currency: str
    amount: float
    formatted: str

    def __post_init__(self) -> None:
        """Validate price constraints."""
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")
        if self.amount < 0:
            raise ValueError(f"Price cannot be negative: {self.amount}")

    def to_document(self) -> dict[str, Any]:
        return {"currency": self.currency, "amount": self.amount, "formatted": self.formatted}


@dataclass(frozen=True)
class StoreProduct:
    """Normalized store-side product definition, ready for reconciliation."""

    platform: Platform
    sku: str
    name: str
    description: str
    prices: tuple[PriceEntry, ...]
    status: IapStatus

    def __post_init__(self) -> None:
        if not self.sku:
            raise ValueError("SKU required")


@dataclass(frozen=True)
class SyncPatch:
    """Store-origin IapProduct fields written by the reconciler."""

    platform: Platform
    sku: str
    name: str
    description: str
    prices: tuple[PriceEntry, ...]
    status: IapStatus
    last_synced: datetime
    sync_error: str | None = None

    @classmethod
    def from_store_product(cls, product: StoreProduct, synced_at: datetime) -> "SyncPatch":
        return cls(
            platform=product.platform,
            sku=product.sku,
            name=product.name,
            description=product.description,
            prices=product.prices,
            status=product.status,
            last_synced=synced_at,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "prices": [price.to_document() for price in self.prices],
            "status": self.status.value,
            "lastSynced": to_iso(self.last_synced),
            "syncError": self.sync_error,
        }


@dataclass(frozen=True)
class LinkPatch:
    """Link fields written by the link maintainer. ``isLinked`` is derived."""

    linked_product_id: str | None

    @classmethod
    def unlinked(cls) -> "LinkPatch":
        return cls(linked_product_id=None)

    @classmethod
    def linked_to(cls, product_id: str) -> "LinkPatch":
        if not product_id:
            raise ValueError("Product ID required")
        return cls(linked_product_id=product_id)

    @property
    def is_linked(self) -> bool:
        return self.linked_product_id is not None

    def to_document(self) -> dict[str, Any]:
        return {"linkedProductId": self.linked_product_id, "isLinked": self.is_linked}


@dataclass(frozen=True)
class IapLinkState:
    """Link fields read back from a stored IapProduct."""

    sku: str
    platform: Platform | None
    linked_product_id: str | None
    is_linked: bool

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "IapLinkState":
        platform = data.get("platform")
        return cls(
            sku=doc_id,
            platform=Platform(platform) if platform in {p.value for p in Platform} else None,
            linked_product_id=data.get("linkedProductId") or None,
            is_linked=bool(data.get("isLinked", False)),
        )

    @property
    def is_consistent(self) -> bool:
        return self.is_linked == (self.linked_product_id is not None)


@dataclass(frozen=True)
class ProductIapRefs:
    """The IAP claims held by one Product."""

    android: str | None
    ios: str | None

    @classmethod
    def from_document(cls, data: dict[str, Any] | None) -> "ProductIapRefs":
        """Read claims from a product document; ``None`` (deleted) holds no claims."""
        if not data:
            return cls(android=None, ios=None)
        return cls(
            android=data.get(PRODUCT_IAP_FIELDS[Platform.ANDROID]) or None,
            ios=data.get(PRODUCT_IAP_FIELDS[Platform.IOS]) or None,
        )

    def for_platform(self, platform: Platform) -> str | None:
        return self.android if platform == Platform.ANDROID else self.ios


# ============================================================================
# Sync results
# ============================================================================


@dataclass
class ReconcileSummary:
    """Counters accumulated over one reconciliation run."""

    total_seen: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def error_summary(self) -> str | None:
        if not self.errors:
            return None
        head = "; ".join(self.errors[:5])
        more = len(self.errors) - 5
        return f"{head} (+{more} more)" if more > 0 else head


@dataclass(frozen=True)
class SyncStatus:
    """Sync-status marker document, written after every run."""

    last_sync: datetime
    success: bool
    item_count: int
    created: int = 0
    updated: int = 0
    failed: int = 0
    error: str | None = None
    platform: Platform = Platform.ANDROID

    def to_document(self) -> dict[str, Any]:
        return {
            "lastSync": to_iso(self.last_sync),
            "success": self.success,
            "itemCount": self.item_count,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "error": self.error,
            "platform": self.platform.value,
        }


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync run as reported to the scheduler or HTTP caller."""

    success: bool
    total: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    error: str | None = None

    def to_response(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "total": self.total,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
        }


# ============================================================================
# Link maintenance
# ============================================================================


@dataclass(frozen=True)
class LinkOutcome:
    """What happened to one platform's link during maintenance."""

    platform: Platform
    unlinked: str | None = None
    linked: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.warnings


@dataclass(frozen=True)
class LinkMaintenanceReport:
    """Per-platform outcomes of one link maintenance call."""

    product_id: str
    outcomes: tuple[LinkOutcome, ...]

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    def for_platform(self, platform: Platform) -> LinkOutcome:
        for outcome in self.outcomes:
            if outcome.platform == platform:
                return outcome
        raise KeyError(platform)


@dataclass
class LinkAuditSummary:
    """Counters from one link audit pass."""

    checked_iap_products: int = 0
    checked_products: int = 0
    cleared: int = 0
    relinked: int = 0


# ============================================================================
# Pagination
# ============================================================================


@dataclass(frozen=True)
class PageCursor:
    """Explicit position in an ordered listing: sort value plus document id."""

    sort_value: Any
    doc_id: str

    def encode(self) -> str:
        """Serialize to an opaque URL-safe token."""
        raw = json.dumps({"v": self.sort_value, "id": self.doc_id}, separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> "PageCursor":
        """Parse a token produced by ``encode``."""
        try:
            payload = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
            return cls(sort_value=payload["v"], doc_id=str(payload["id"]))
        except (binascii.Error, ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"Invalid cursor: {token!r}") from exc


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T]
    has_more: bool
    next_cursor: PageCursor | None = None

    @property
    def next_token(self) -> str | None:
        return self.next_cursor.encode() if self.next_cursor else None


# ============================================================================
# Admin authorization
# ============================================================================


@dataclass(frozen=True)
class AdminUser:
    """Authorization record for an admin console user, keyed by email."""

    email: str
    name: str
    role: AdminRole
    is_active: bool = True
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == AdminRole.ADMIN

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "AdminUser":
        role = data.get("role")
        return cls(
            email=data.get("email") or doc_id,
            name=data.get("name") or doc_id.split("@")[0],
            role=AdminRole(role) if role in {r.value for r in AdminRole} else AdminRole.VIEWER,
            is_active=bool(data.get("isActive", True)),
            created_at=parse_iso(data.get("createdAt")),
            last_login_at=parse_iso(data.get("lastLoginAt")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "isActive": self.is_active,
            "createdAt": to_iso(self.created_at) if self.created_at else None,
            "lastLoginAt": to_iso(self.last_login_at) if self.last_login_at else None,
        }
