"""
Metrics Collection with Prometheus.

Exposes catalog sync, link maintenance and HTTP metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from storefront.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ERROR_TYPE = "error_type"
    PLATFORM = "platform"
    TRIGGER = "trigger"


class StorefrontMetrics:
    """
    Centralized metrics for the Storefront Admin API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - IAP catalog sync runs and per-item outcomes
    - IAP link grants/revocations and audit repairs
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "storefront_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "storefront_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "storefront_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "storefront_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # IAP Sync Metrics
        # ====================================================================
        self.iap_sync_runs_total = Counter(
            "storefront_iap_sync_runs_total",
            "Total IAP catalog sync runs",
            [MetricLabels.TRIGGER, "success"],
        )

        self.iap_sync_items_total = Counter(
            "storefront_iap_sync_items_total",
            "IAP products processed by sync, by outcome",
            ["outcome"],
        )

        self.iap_sync_duration_seconds = Histogram(
            "storefront_iap_sync_duration_seconds",
            "IAP catalog sync duration in seconds",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
        )

        # ====================================================================
        # IAP Link Metrics
        # ====================================================================
        self.iap_link_operations_total = Counter(
            "storefront_iap_link_operations_total",
            "IAP link grants and revocations",
            [MetricLabels.PLATFORM, "action", "outcome"],
        )

        self.iap_link_repairs_total = Counter(
            "storefront_iap_link_repairs_total",
            "IAP links repaired by the audit pass",
            ["action"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "storefront_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_sync(
        self,
        trigger: str,
        success: bool,
        duration: float,
        created: int = 0,
        updated: int = 0,
        failed: int = 0,
        dropped: int = 0,
    ) -> None:
        """Record one sync run and its item outcomes."""
        self.iap_sync_runs_total.labels(trigger=trigger, success=str(success)).inc()
        self.iap_sync_duration_seconds.observe(duration)
        if created:
            self.iap_sync_items_total.labels(outcome="created").inc(created)
        if updated:
            self.iap_sync_items_total.labels(outcome="updated").inc(updated)
        if failed:
            self.iap_sync_items_total.labels(outcome="failed").inc(failed)
        if dropped:
            self.iap_sync_items_total.labels(outcome="dropped").inc(dropped)

    def record_link_operation(self, platform: str, action: str, outcome: str) -> None:
        """Record a link grant/revocation (outcome: ok, missing, error)."""
        self.iap_link_operations_total.labels(
            platform=platform, action=action, outcome=outcome
        ).inc()

    def record_link_repair(self, action: str, count: int = 1) -> None:
        """Record links cleared or re-granted by the audit pass."""
        if count:
            self.iap_link_repairs_total.labels(action=action).inc(count)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = StorefrontMetrics()
