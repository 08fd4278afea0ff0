"""
Tests for CategoryService.
"""

import pytest
from pydantic import ValidationError

from storefront.db.document_store import CATEGORIES
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import CategoryWrite
from storefront.services.categories import CategoryService


@pytest.fixture
def service(store, clock) -> CategoryService:
    return CategoryService(store, clock=clock)


class TestCategoryService:
    """Tests for category CRUD."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store, service):
        created = await service.create_category(CategoryWrite(name="  Brushes ", order=2))

        fetched = await service.get_category(created.id)
        assert fetched.name == "Brushes"
        assert fetched.order == 2
        assert fetched.is_active is True
        assert store.data(CATEGORIES, created.id)["isActive"] is True

    @pytest.mark.asyncio
    async def test_update(self, service):
        created = await service.create_category(CategoryWrite(name="Brushes"))

        updated = await service.update_category(
            created.id, CategoryWrite(name="Inks", isActive=False)
        )

        assert updated.name == "Inks"
        assert updated.is_active is False
        assert updated.created_at == created.created_at

    @pytest.mark.asyncio
    async def test_update_missing(self, service):
        with pytest.raises(ResourceNotFoundError):
            await service.update_category("nope", CategoryWrite(name="Inks"))

    @pytest.mark.asyncio
    async def test_delete(self, store, service):
        created = await service.create_category(CategoryWrite(name="Brushes"))

        await service.delete_category(created.id)

        assert store.ids(CATEGORIES) == set()
        with pytest.raises(ResourceNotFoundError):
            await service.get_category(created.id)

    @pytest.mark.asyncio
    async def test_list_pages(self, service):
        for name in ("A", "B", "C"):
            await service.create_category(CategoryWrite(name=name))

        page = await service.list_categories(page_size=2)

        assert [c.name for c in page.items] == ["C", "B"]
        assert page.has_more is True
        assert page.next_token is not None

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            CategoryWrite(name="   ")
