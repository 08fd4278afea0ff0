"""
Tests for ProductService.

Product writes run against the in-memory store with the real link
maintainer, so link side effects are asserted on the stored IAP products.
"""

import pytest
from conftest import seed_iap_product, seed_product
from pydantic import ValidationError

from storefront.db.document_store import IAP_PRODUCTS, PRODUCTS, SYNC_STATUS_DOC_ID
from storefront.exceptions import ResourceNotFoundError
from storefront.models.api import Platform, ProductWrite
from storefront.services.products import ProductService

INR_USD_PRICES = [
    {"currency": "USD", "amount": 1.99, "formatted": "$1.99"},
    {"currency": "INR", "amount": 99.0, "formatted": "₹99.00"},
]


def product_write(**overrides) -> ProductWrite:
    payload = {
        "title": "Brush Pack",
        "description": "Forty hand-made brushes",
        "categoryId": "cat-1",
        "iapProductIdAndroid": "pack_a",
    }
    payload.update(overrides)
    return ProductWrite.model_validate(payload)


class TestProductWriteValidation:
    """Tests for the ProductWrite payload model."""

    def test_short_title_rejected(self):
        with pytest.raises(ValidationError, match="at least 3"):
            product_write(title="ab")

    def test_short_description_rejected(self):
        with pytest.raises(ValidationError, match="at least 10"):
            product_write(description="short")

    def test_category_required(self):
        with pytest.raises(ValidationError):
            product_write(categoryId="")

    def test_tags_from_comma_string(self):
        assert product_write(tags="brush, ink ,, paper").tags == ["brush", "ink", "paper"]

    def test_blank_reference_is_none(self):
        assert product_write(iapProductIdAndroid="  ").iap_product_id_android is None

    @pytest.mark.parametrize("field", ["iapProductIdAndroid", "iapProductIdIOS"])
    def test_sync_status_marker_is_not_a_reference(self, field):
        with pytest.raises(ValidationError, match="Not an IAP product ID"):
            product_write(**{field: SYNC_STATUS_DOC_ID})

    def test_free_product_drops_references(self):
        data = product_write(isFree=True, iapProductIdIOS="pack_ios")

        assert data.iap_product_id_android is None
        assert data.iap_product_id_ios is None

    def test_dump_uses_stored_field_names(self):
        dumped = product_write(iapProductIdIOS="pack_ios").model_dump(by_alias=True)

        assert dumped["iapProductIdAndroid"] == "pack_a"
        assert dumped["iapProductIdIOS"] == "pack_ios"
        assert dumped["categoryId"] == "cat-1"


class TestCreateProduct:
    """Tests for ProductService.create_product."""

    @pytest.mark.asyncio
    async def test_create_links_iap_product(self, store, product_service):
        seed_iap_product(store, "pack_a", prices=INR_USD_PRICES)

        created = await product_service.create_product(product_write())

        assert created.id in store.ids(PRODUCTS)
        iap = store.data(IAP_PRODUCTS, "pack_a")
        assert iap["linkedProductId"] == created.id
        assert iap["isLinked"] is True

    @pytest.mark.asyncio
    async def test_display_price_prefers_configured_currency(self, store, product_service):
        seed_iap_product(store, "pack_a", prices=INR_USD_PRICES)

        created = await product_service.create_product(product_write())

        assert (created.display_price, created.display_currency) == (99.0, "INR")
        stored = store.data(PRODUCTS, created.id)
        assert stored["displayPrice"] == 99.0
        assert stored["displayCurrency"] == "INR"

    @pytest.mark.asyncio
    async def test_stale_reference_still_saves(self, store, product_service):
        """A missing IAP product never fails the product save."""
        created = await product_service.create_product(product_write(iapProductIdAndroid="gone"))

        assert created.id in store.ids(PRODUCTS)
        assert created.display_price is None

    @pytest.mark.asyncio
    async def test_free_product_has_no_display_price(self, store, product_service):
        seed_iap_product(store, "pack_a", prices=INR_USD_PRICES)

        created = await product_service.create_product(product_write(isFree=True))

        assert created.display_price is None
        assert store.data(IAP_PRODUCTS, "pack_a")["isLinked"] is False

    @pytest.mark.asyncio
    async def test_timestamps_set(self, store, product_service):
        created = await product_service.create_product(product_write(iapProductIdAndroid=None))

        assert created.created_at is not None
        assert created.created_at == created.updated_at


class TestUpdateProduct:
    """Tests for ProductService.update_product."""

    @pytest.mark.asyncio
    async def test_switching_sku_moves_link(self, store, product_service):
        seed_iap_product(store, "pack_a")
        seed_iap_product(store, "pack_b")
        created = await product_service.create_product(product_write())

        updated = await product_service.update_product(
            created.id, product_write(iapProductIdAndroid="pack_b")
        )

        assert updated.iap_product_id_android == "pack_b"
        assert store.data(IAP_PRODUCTS, "pack_a")["isLinked"] is False
        assert store.data(IAP_PRODUCTS, "pack_b")["linkedProductId"] == created.id

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, store, product_service):
        created = await product_service.create_product(product_write(iapProductIdAndroid=None))

        updated = await product_service.update_product(
            created.id, product_write(iapProductIdAndroid=None, title="Renamed Pack")
        )

        assert updated.title == "Renamed Pack"
        assert updated.created_at == created.created_at
        assert updated.updated_at > created.updated_at

    @pytest.mark.asyncio
    async def test_update_missing_product(self, product_service):
        with pytest.raises(ResourceNotFoundError):
            await product_service.update_product("nope", product_write())


class TestDeleteProduct:
    """Tests for ProductService.delete_product."""

    @pytest.mark.asyncio
    async def test_delete_releases_links(self, store, product_service):
        seed_iap_product(store, "pack_a")
        seed_iap_product(store, "pack_ios", platform=Platform.IOS)
        created = await product_service.create_product(product_write(iapProductIdIOS="pack_ios"))

        await product_service.delete_product(created.id)

        assert created.id not in store.ids(PRODUCTS)
        assert store.data(IAP_PRODUCTS, "pack_a")["isLinked"] is False
        assert store.data(IAP_PRODUCTS, "pack_ios")["isLinked"] is False

    @pytest.mark.asyncio
    async def test_delete_missing_product(self, product_service):
        with pytest.raises(ResourceNotFoundError):
            await product_service.delete_product("nope")


class TestReadProducts:
    """Tests for listing and reading products."""

    @pytest.mark.asyncio
    async def test_get_product(self, store, product_service):
        seed_product(store, "prod-1", android="pack_a")

        result = await product_service.get_product("prod-1")

        assert result.iap_product_id_android == "pack_a"

    @pytest.mark.asyncio
    async def test_get_missing_product(self, product_service):
        with pytest.raises(ResourceNotFoundError):
            await product_service.get_product("nope")

    @pytest.mark.asyncio
    async def test_list_newest_first_with_cursor(self, store, link_maintainer, clock):
        service = ProductService(store, link_maintainer, clock=clock)
        ids = [
            (await service.create_product(product_write(iapProductIdAndroid=None))).id
            for _ in range(3)
        ]

        first = await service.list_products(page_size=2)
        second = await service.list_products(page_size=2, cursor=first.next_cursor)

        assert [p.id for p in first.items] == [ids[2], ids[1]]
        assert first.has_more is True
        assert [p.id for p in second.items] == [ids[0]]
        assert second.has_more is False
        assert second.next_cursor is None


class TestResolveDisplayPrice:
    """Tests for ProductService.resolve_display_price."""

    @pytest.mark.asyncio
    async def test_android_checked_before_ios(self, store, product_service):
        seed_iap_product(store, "pack_a", prices=[{"currency": "USD", "amount": 2.0}])
        seed_iap_product(
            store, "pack_ios", platform=Platform.IOS, prices=[{"currency": "INR", "amount": 150.0}]
        )

        price = await product_service.resolve_display_price(
            product_write(iapProductIdIOS="pack_ios")
        )

        assert price == (2.0, "USD")

    @pytest.mark.asyncio
    async def test_falls_back_to_ios(self, store, product_service):
        seed_iap_product(store, "pack_a", prices=[])
        seed_iap_product(
            store, "pack_ios", platform=Platform.IOS, prices=[{"currency": "EUR", "amount": 1.5}]
        )

        price = await product_service.resolve_display_price(
            product_write(iapProductIdIOS="pack_ios")
        )

        assert price == (1.5, "EUR")

    @pytest.mark.asyncio
    async def test_custom_preferences(self, store, link_maintainer):
        seed_iap_product(store, "pack_a", prices=INR_USD_PRICES)
        service = ProductService(store, link_maintainer, preferred_currencies=["USD"])

        assert await service.resolve_display_price(product_write()) == (1.99, "USD")
