"""
Status API routes - Health checks for storefront dependencies.

Public endpoint (no auth) for status page aggregation.
Rate limited to prevent abuse.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from structlog import get_logger

from storefront.api.dependencies import get_document_store
from storefront.config import settings
from storefront.db.document_store import DocumentStore

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms

GOOGLE_PLAY_DISCOVERY_URL = "https://androidpublisher.googleapis.com/$discovery/rest?version=v3"

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single dependency."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _latency_status(latency_ms: int, timestamp: str) -> ProviderStatus:
    level = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=level,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if level == StatusLevel.DEGRADED else None,
    )


async def check_document_store(store: DocumentStore) -> ProviderStatus:
    """Check document store connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        await asyncio.wait_for(store.ping(), timeout=CHECK_TIMEOUT)
    except TimeoutError:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("document_store_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    return _latency_status(int((time.perf_counter() - start) * 1000), timestamp)


async def check_google_play() -> ProviderStatus:
    """Check Google Play Developer API reachability."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    # Sync cannot run without credentials, but the API itself is not at fault
    if not settings.GOOGLE_PLAY_SERVICE_ACCOUNT:
        return ProviderStatus(
            status=StatusLevel.OPERATIONAL,
            latency_ms=0,
            last_check=timestamp,
            message="Not configured",
        )

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(GOOGLE_PLAY_DISCOVERY_URL)
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("google_play_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )

    latency_ms = int((time.perf_counter() - start) * 1000)
    if response.status_code != 200:
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=latency_ms,
            last_check=timestamp,
            message=f"Unexpected status: {response.status_code}",
        )
    return _latency_status(latency_ms, timestamp)


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(
    store: DocumentStore = Depends(get_document_store),
) -> ServiceStatusResponse:
    """
    Get service status.

    Public endpoint (no auth) for status page aggregation.
    Rate limited via 10-second cache to prevent abuse.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    document_store_status, google_play_status = await asyncio.gather(
        check_document_store(store),
        check_google_play(),
    )

    providers = {
        "document_store": document_store_status,
        "google_play": google_play_status,
    }

    response = ServiceStatusResponse(
        service=settings.service_name,
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )

    _status_cache[cache_key] = (now, response)
    return response
