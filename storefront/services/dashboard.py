"""
Dashboard Service - Headline counters for the admin console.
"""

from storefront.db.document_store import CATEGORIES, PRODUCTS, PURCHASES, USERS, DocumentStore
from storefront.models.api import DashboardStatsResponse


class DashboardService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get_stats(self) -> DashboardStatsResponse:
        """
        Count products, categories, users and purchases.

        Products count as active unless ``isActive`` is explicitly false.
        Revenue sums ``productPrice`` over completed purchases only.
        """
        products = await self.store.query(PRODUCTS)
        categories = await self.store.query(CATEGORIES)
        users = await self.store.query(USERS)
        purchases = await self.store.query(PURCHASES)

        return DashboardStatsResponse(
            total_products=len(products),
            active_products=sum(1 for p in products if p.get("isActive") is not False),
            total_categories=len(categories),
            total_users=len(users),
            total_purchases=len(purchases),
            total_revenue=sum(
                float(p.get("productPrice") or 0)
                for p in purchases
                if p.get("status") == "completed"
            ),
        )
