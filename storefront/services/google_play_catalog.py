"""
Google Play Catalog Fetcher - Reads in-app product definitions.

Read-only and side-effect free: authenticates with a service account, lists
every in-app product for one package, and normalizes each record into a
StoreProduct. Performs no retries; callers re-run on the next tick.
"""

import asyncio
import base64
import binascii
import json
import os
import socket
from dataclasses import dataclass
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError, RefreshError, TransportError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from structlog import get_logger

from storefront.exceptions import AuthError, TransformError, UpstreamError
from storefront.models.api import IapStatus, Platform
from storefront.models.domain import PriceEntry, StoreProduct
from storefront.services.pricing import format_price, micros_to_amount

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class CatalogPage:
    """One page of raw store records plus the cursor for the next page."""

    items: tuple[dict[str, Any], ...]
    next_page_token: str | None


@dataclass(frozen=True)
class CatalogFetchResult:
    """Normalized catalog plus the records that could not be normalized."""

    products: tuple[StoreProduct, ...]
    rejected: tuple[TransformError, ...]

    @property
    def total_seen(self) -> int:
        return len(self.products) + len(self.rejected)


def load_service_account_info(raw: str | dict[str, Any]) -> dict[str, Any]:
    """
    Resolve service-account credentials from config.

    Accepts a dict, a JSON string, a base64-encoded JSON string, or a path
    to a JSON key file.

    Raises:
        AuthError: If credentials are missing or unreadable
    """
    if isinstance(raw, dict):
        if not raw:
            raise AuthError("service account credentials not configured")
        return raw

    value = raw.strip() if raw else ""
    if not value:
        raise AuthError("service account credentials not configured")

    try:
        if value.startswith("{"):
            info = json.loads(value)
        elif os.path.isfile(value):
            with open(value, encoding="utf-8") as fh:
                info = json.load(fh)
        else:
            info = json.loads(base64.b64decode(value, validate=True).decode("utf-8"))
    except (ValueError, binascii.Error, OSError) as exc:
        raise AuthError(f"service account credentials unreadable: {exc}") from exc

    if not isinstance(info, dict):
        raise AuthError("service account credentials must be a JSON object")
    return info


def _price_entry(price: Any, sku: str) -> PriceEntry:
    if not isinstance(price, dict):
        raise TransformError(sku, f"price is not an object: {price!r}")

    currency = price.get("currency") or DEFAULT_CURRENCY
    if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
        raise TransformError(sku, f"invalid currency code: {currency!r}")
    currency = currency.upper()

    try:
        price_micros = int(price.get("priceMicros") or 0)
    except (TypeError, ValueError) as exc:
        raise TransformError(sku, f"invalid priceMicros: {price.get('priceMicros')!r}") from exc
    if price_micros < 0:
        raise TransformError(sku, f"negative priceMicros: {price_micros}")

    amount = micros_to_amount(price_micros)
    return PriceEntry(currency=currency, amount=amount, formatted=format_price(amount, currency))


def normalize_store_product(
    raw: dict[str, Any], platform: Platform = Platform.ANDROID
) -> StoreProduct:
    """
    Normalize one Android Publisher ``InAppProduct`` resource.

    Extracts one price per currency (default price first, then regional
    prices in region order) and the listing for the default language.

    Raises:
        TransformError: If the record has no SKU or a malformed price
    """
    sku = raw.get("sku")
    if not isinstance(sku, str) or not sku.strip():
        raise TransformError(None, "missing SKU")
    sku = sku.strip()

    prices: list[PriceEntry] = []
    seen: set[str] = set()
    default_price = raw.get("defaultPrice")
    if default_price:
        entry = _price_entry(default_price, sku)
        prices.append(entry)
        seen.add(entry.currency)

    regional = raw.get("prices") or {}
    if not isinstance(regional, dict):
        raise TransformError(sku, "regional prices are not an object")
    for region in sorted(regional):
        entry = _price_entry(regional[region], sku)
        if entry.currency not in seen:
            prices.append(entry)
            seen.add(entry.currency)

    listings = raw.get("listings") or {}
    listing: dict[str, Any] = {}
    if isinstance(listings, dict) and listings:
        default_language = raw.get("defaultLanguage")
        listing = listings.get(default_language) or next(iter(listings.values())) or {}

    status_value = str(raw.get("status") or "").lower()
    status = (
        IapStatus(status_value)
        if status_value in {s.value for s in IapStatus}
        else IapStatus.INACTIVE
    )

    return StoreProduct(
        platform=platform,
        sku=sku,
        name=listing.get("title") or sku,
        description=listing.get("description") or "",
        prices=tuple(prices),
        status=status,
    )


class GooglePlayCatalogFetcher:
    """
    Google Play in-app product catalog reader.

    Lists managed products through the Android Publisher API.
    """

    platform = Platform.ANDROID

    def __init__(
        self,
        service_account_json: str | dict[str, Any],
        package_name: str,
        timeout_seconds: int = 30,
    ) -> None:
        """
        Initialize Google Play catalog fetcher.

        Args:
            service_account_json: Service account JSON (dict, JSON text, base64 or file path)
            package_name: Android package name (e.g., 'com.assetdoor.app')
            timeout_seconds: HTTP timeout for publisher API calls
        """
        self.package_name = package_name
        self.timeout_seconds = timeout_seconds
        self._service_account_json = service_account_json
        self._service: Any = None

    def _get_service(self) -> Any:
        """Build the publisher API client on first use."""
        if self._service is not None:
            return self._service

        info = load_service_account_info(self._service_account_json)
        try:
            credentials = service_account.Credentials.from_service_account_info(  # type: ignore[no-untyped-call]
                info,
                scopes=[ANDROID_PUBLISHER_SCOPE],
            )
        except (ValueError, KeyError, GoogleAuthError) as exc:
            raise AuthError(f"invalid service account key: {exc}") from exc

        http = google_auth_httplib2.AuthorizedHttp(
            credentials, http=httplib2.Http(timeout=self.timeout_seconds)
        )
        self._service = build("androidpublisher", "v3", http=http, cache_discovery=False)

        logger.info(
            "google_play_catalog_client_initialized",
            package_name=self.package_name,
            client_email=info.get("client_email"),
        )
        return self._service

    async def fetch_page(self, page_token: str | None = None) -> CatalogPage:
        """
        Fetch one page of raw in-app product records.

        Args:
            page_token: Cursor returned by the previous page, None for the first

        Raises:
            AuthError: If credentials are missing or rejected
            UpstreamError: If the API is unreachable or returns an error
        """
        service = self._get_service()
        params: dict[str, Any] = {"packageName": self.package_name}
        if page_token:
            params["token"] = page_token

        try:
            request = service.inappproducts().list(**params)
            # googleapiclient is blocking; keep the event loop free
            response = await asyncio.to_thread(request.execute)

        except HttpError as exc:
            status = exc.resp.status
            error_content = exc.content.decode("utf-8") if exc.content else str(exc)
            logger.error(
                "google_play_catalog_list_failed",
                package_name=self.package_name,
                status=status,
                error=error_content,
            )
            if status in (401, 403):
                raise AuthError(f"Google Play rejected credentials ({status})") from exc
            raise UpstreamError(error_content, status=status) from exc

        except RefreshError as exc:
            logger.error("google_play_token_refresh_failed", error=str(exc))
            raise AuthError(f"token refresh failed: {exc}") from exc

        except (TransportError, httplib2.HttpLib2Error, socket.timeout, OSError) as exc:
            logger.error("google_play_catalog_unreachable", error=str(exc))
            raise UpstreamError(f"Google Play API unreachable: {exc}") from exc

        # The v3 resource key is "inappproduct"; some clients report "inappproducts"
        items = response.get("inappproduct") or response.get("inappproducts") or []
        next_token = (response.get("tokenPagination") or {}).get("nextPageToken")

        logger.info(
            "google_play_catalog_page_fetched",
            package_name=self.package_name,
            items=len(items),
            has_next=bool(next_token),
        )
        return CatalogPage(items=tuple(items), next_page_token=next_token)

    async def fetch_all(self) -> CatalogFetchResult:
        """
        Fetch and normalize the full catalog.

        Records that cannot be normalized are dropped with a warning and
        returned in ``rejected``; they never reach reconciliation.

        Raises:
            AuthError: If credentials are missing or rejected
            UpstreamError: If the API is unreachable or returns an error
        """
        products: list[StoreProduct] = []
        rejected: list[TransformError] = []
        page_token: str | None = None
        seen_tokens: set[str] = set()

        while True:
            page = await self.fetch_page(page_token)
            for raw in page.items:
                try:
                    products.append(normalize_store_product(raw, self.platform))
                except TransformError as exc:
                    logger.warning(
                        "store_product_dropped",
                        sku=exc.sku,
                        reason=exc.reason,
                    )
                    rejected.append(exc)

            page_token = page.next_page_token
            if not page_token or page_token in seen_tokens:
                break
            seen_tokens.add(page_token)

        logger.info(
            "google_play_catalog_fetched",
            package_name=self.package_name,
            products=len(products),
            dropped=len(rejected),
        )
        return CatalogFetchResult(products=tuple(products), rejected=tuple(rejected))
