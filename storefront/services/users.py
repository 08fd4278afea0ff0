"""
User Service - Storefront customer records.

When the users collection is empty it is backfilled from purchase records:
one user per purchasing ``userId`` with purchase count, spend and first/last
purchase dates.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from structlog import get_logger

from storefront.db.document_store import (
    MAX_BATCH_WRITES,
    PURCHASES,
    USERS,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    fetch_page,
)
from storefront.exceptions import BatchWriteError, ResourceNotFoundError
from storefront.models.api import PurchaseResponse, UserResponse, UserUpdate
from storefront.models.domain import Clock, Page, PageCursor, parse_iso, to_iso, utc_now

logger = get_logger(__name__)


@dataclass
class _DerivedUser:
    user_id: str
    email: str
    display_name: str
    first_purchase: datetime | None
    last_purchase: datetime | None
    total_purchases: int = 0
    total_spent: float = 0.0

    def to_document(self, now: datetime) -> dict[str, Any]:
        return {
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": None,
            "isActive": True,
            "createdAt": to_iso(self.first_purchase or now),
            "lastLogin": to_iso(self.last_purchase or now),
            "totalPurchases": self.total_purchases,
            "totalSpent": self.total_spent,
            "updatedAt": to_iso(now),
        }


def derive_users(purchases: list[DocumentSnapshot]) -> list[_DerivedUser]:
    """Group purchases by user; purchases without a userId are skipped."""
    users: dict[str, _DerivedUser] = {}
    for purchase in purchases:
        user_id = purchase.get("userId")
        if not user_id:
            continue
        purchased_at = parse_iso(purchase.get("purchaseDate"))
        user = users.get(user_id)
        if user is None:
            email = purchase.get("userEmail") or ""
            user = users[user_id] = _DerivedUser(
                user_id=user_id,
                email=email,
                display_name=purchase.get("userName") or email or "User",
                first_purchase=purchased_at,
                last_purchase=purchased_at,
            )
        user.total_purchases += 1
        user.total_spent += float(purchase.get("productPrice") or 0)
        if purchased_at is not None:
            if user.first_purchase is None or purchased_at < user.first_purchase:
                user.first_purchase = purchased_at
            if user.last_purchase is None or purchased_at > user.last_purchase:
                user.last_purchase = purchased_at
    return list(users.values())


class UserService:
    """Customer administration."""

    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self.store = store
        self.clock = clock

    async def list_users(
        self, page_size: int = 20, cursor: PageCursor | None = None
    ) -> Page[UserResponse]:
        """List users, newest first, backfilling from purchases on first use."""
        page = await fetch_page(
            self.store, USERS, order_by="createdAt", page_size=page_size, cursor=cursor
        )
        if not page.items and cursor is None:
            if await self.sync_users_from_purchases():
                page = await fetch_page(
                    self.store, USERS, order_by="createdAt", page_size=page_size
                )
        return Page(
            items=[UserResponse.from_document(doc.id, doc.data) for doc in page.items],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def sync_users_from_purchases(self) -> int:
        """
        Persist one user document per purchasing user.

        Writes merge into existing documents in batches of at most
        MAX_BATCH_WRITES. Returns the number of users written.
        """
        purchases = await self.store.query(PURCHASES)
        users = derive_users(purchases)
        now = self.clock()

        written = 0
        for start in range(0, len(users), MAX_BATCH_WRITES):
            chunk = users[start : start + MAX_BATCH_WRITES]
            batch = self.store.batch()
            for user in chunk:
                batch.set(USERS, user.user_id, user.to_document(now), merge=True)
            try:
                await batch.commit()
            except BatchWriteError as exc:
                logger.error(
                    "user_backfill_batch_failed",
                    chunk_index=start // MAX_BATCH_WRITES,
                    size=len(chunk),
                    error=exc.message,
                )
                continue
            written += len(chunk)

        logger.info("users_synced_from_purchases", purchases=len(purchases), users=written)
        return written

    async def get_user(self, user_id: str) -> UserResponse:
        snapshot = await self.store.get(USERS, user_id)
        if snapshot is None:
            raise ResourceNotFoundError(f"User not found: {user_id}")
        return UserResponse.from_document(snapshot.id, snapshot.data)

    async def update_user(self, user_id: str, data: UserUpdate) -> UserResponse:
        """
        Apply admin edits to a user.

        Raises:
            ResourceNotFoundError: If the user does not exist
        """
        changes = data.model_dump(by_alias=True, exclude_unset=True)
        changes["updatedAt"] = self.clock()
        await self.store.update(USERS, user_id, changes)
        logger.info("user_updated", user_id=user_id)
        return await self.get_user(user_id)

    async def list_user_purchases(self, user_id: str) -> list[PurchaseResponse]:
        """All purchases by one user, most recent first."""
        docs = await self.store.query(
            PURCHASES,
            filters=[FieldFilter("userId", "==", user_id)],
            order_by="purchaseDate",
            descending=True,
        )
        return [PurchaseResponse.from_document(doc.id, doc.data) for doc in docs]
