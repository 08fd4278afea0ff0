"""
IAP Sync Job - One fetch-and-reconcile run of the store catalog.

Invoked by the scheduler every tick and by the manual admin endpoint. A run
never raises: every outcome, including authentication and upstream failures,
ends with a sync-status marker and a SyncResult.
"""

import time
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from structlog import get_logger

from storefront.config import Settings, get_settings
from storefront.db.document_store import DocumentStore
from storefront.db.session import create_document_store
from storefront.exceptions import AuthError, StorefrontError, UpstreamError
from storefront.models.api import Platform
from storefront.models.domain import Clock, SyncResult, SyncStatus, utc_now
from storefront.observability.logging import log_context
from storefront.observability.metrics import metrics
from storefront.observability.tracing import add_span_attributes, trace_operation
from storefront.services.google_play_catalog import CatalogFetchResult, GooglePlayCatalogFetcher
from storefront.services.iap_reconciler import IapReconciler

logger = get_logger(__name__)


class CatalogFetcher(Protocol):
    """Anything that can list one platform's full catalog."""

    platform: Platform

    async def fetch_all(self) -> CatalogFetchResult: ...


class IapSyncJob:
    """Runs the catalog fetcher and reconciler and records the outcome."""

    def __init__(
        self,
        fetcher_factory: Callable[[], CatalogFetcher],
        reconciler: IapReconciler,
        clock: Clock = utc_now,
        platform: Platform = Platform.ANDROID,
    ) -> None:
        """
        Initialize sync job.

        Args:
            fetcher_factory: Builds the catalog fetcher (credentials load lazily)
            reconciler: Reconciler bound to the document store
            clock: Source of the marker timestamp
            platform: Platform recorded in the marker
        """
        self.fetcher_factory = fetcher_factory
        self.reconciler = reconciler
        self.clock = clock
        self.platform = platform

    async def run(self, trigger: str = "scheduled") -> SyncResult:
        """
        Fetch the catalog and reconcile it into the store.

        Args:
            trigger: "scheduled" or "manual", recorded in logs and metrics

        Returns:
            SyncResult; failures are reported in it rather than raised
        """
        started = time.perf_counter()
        with log_context(sync_run_id=uuid.uuid4().hex[:12], trigger=trigger):
            logger.info("iap_sync_started", platform=self.platform.value)
            with trace_operation("iap_sync", trigger=trigger, platform=self.platform.value) as span:
                result, dropped = await self._run()
                add_span_attributes(
                    span,
                    success=result.success,
                    total=result.total,
                    created=result.created,
                    updated=result.updated,
                    failed=result.failed,
                )

            duration = time.perf_counter() - started
            metrics.record_sync(
                trigger,
                result.success,
                duration,
                created=result.created,
                updated=result.updated,
                failed=result.failed - dropped,
                dropped=dropped,
            )
            if result.success:
                logger.info(
                    "iap_sync_completed",
                    total=result.total,
                    created=result.created,
                    updated=result.updated,
                    failed=result.failed,
                    duration_seconds=round(duration, 3),
                )
            else:
                logger.error(
                    "iap_sync_failed",
                    error=result.error,
                    duration_seconds=round(duration, 3),
                )
            return result

    async def _run(self) -> tuple[SyncResult, int]:
        """Returns the result and the number of records dropped during normalization."""
        try:
            fetched = await self.fetcher_factory().fetch_all()
        except (AuthError, UpstreamError) as exc:
            metrics.record_error(type(exc).__name__, "iap_sync_fetch")
            return await self._fail(str(exc)), 0
        except Exception as exc:
            logger.exception("iap_sync_fetch_unexpected_error", error=str(exc))
            metrics.record_error(type(exc).__name__, "iap_sync_fetch")
            return await self._fail(str(exc)), 0

        try:
            summary = await self.reconciler.reconcile(fetched.products, fetched.rejected)
        except Exception as exc:
            logger.exception("iap_sync_reconcile_unexpected_error", error=str(exc))
            metrics.record_error(type(exc).__name__, "iap_sync_reconcile")
            return await self._fail(str(exc), item_count=fetched.total_seen), 0

        await self._write_status(
            SyncStatus(
                last_sync=self.clock(),
                success=True,
                item_count=summary.total_seen,
                created=summary.created,
                updated=summary.updated,
                failed=summary.failed,
                error=summary.error_summary,
                platform=self.platform,
            )
        )

        result = SyncResult(
            success=True,
            total=summary.total_seen,
            created=summary.created,
            updated=summary.updated,
            failed=summary.failed,
        )
        return result, len(fetched.rejected)

    async def _fail(self, error: str, item_count: int = 0) -> SyncResult:
        await self._write_status(
            SyncStatus(
                last_sync=self.clock(),
                success=False,
                item_count=item_count,
                error=error,
                platform=self.platform,
            )
        )
        return SyncResult(success=False, total=item_count, error=error)

    async def _write_status(self, status: SyncStatus) -> None:
        """Write the marker; a failure here is logged and never masks the run result."""
        try:
            await self.reconciler.write_sync_status(status)
        except StorefrontError as exc:
            logger.error("iap_sync_status_write_failed", error=str(exc))
            metrics.record_error(type(exc).__name__, "iap_sync_status")


def build_sync_job(store: DocumentStore, settings: Settings | None = None) -> IapSyncJob:
    """Wire a sync job from settings."""
    cfg = settings or get_settings()

    def fetcher_factory() -> GooglePlayCatalogFetcher:
        return GooglePlayCatalogFetcher(
            service_account_json=cfg.GOOGLE_PLAY_SERVICE_ACCOUNT,
            package_name=cfg.GOOGLE_PLAY_PACKAGE_NAME,
            timeout_seconds=cfg.google_play_timeout_seconds,
        )

    reconciler = IapReconciler(store, batch_size=cfg.effective_sync_batch_size)
    return IapSyncJob(fetcher_factory, reconciler)


async def run_scheduled_sync() -> dict[str, Any]:
    """
    Entry point for the periodic scheduler: one sync run against the configured store.

    Returns:
        {success, total, created, updated, failed} or {success: False, error}
    """
    job = build_sync_job(create_document_store())
    result = await job.run(trigger="scheduled")
    return result.to_response()
