"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from devclip.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    PLAN_TIER = "plan_tier"
    MODEL = "model"
    REASON = "reason"
    ERROR_TYPE = "error_type"


class DevClipMetrics:
    """
    Centralized metrics for the DevClip API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Metered operations (rate by outcome, duration)
    - Credits debited per operation and tier
    - AI provider calls (latency, tokens)
    - Authentication failures by reason
    - Usage-record write failures (billing already completed)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "devclip_service",
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
            "devclip_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "devclip_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "devclip_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Operation Metrics
        # ====================================================================
        self.operations_total = Counter(
            "devclip_operations_total",
            "Metered operations by terminal outcome",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.operation_duration_seconds = Histogram(
            "devclip_operation_duration_seconds",
            "Operation handler duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.credits_debited_total = Counter(
            "devclip_credits_debited_total",
            "Credits debited from accounts",
            [MetricLabels.OPERATION, MetricLabels.PLAN_TIER],
        )

        # ====================================================================
        # AI Provider Metrics
        # ====================================================================
        self.ai_requests_total = Counter(
            "devclip_ai_requests_total",
            "Completion provider calls",
            [MetricLabels.MODEL, "success"],
        )

        self.ai_request_duration_seconds = Histogram(
            "devclip_ai_request_duration_seconds",
            "Completion provider latency in seconds",
            [MetricLabels.MODEL],
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
        )

        self.ai_tokens_total = Counter(
            "devclip_ai_tokens_total",
            "Provider-reported tokens consumed",
            [MetricLabels.MODEL],
        )

        # ====================================================================
        # Auth & Bookkeeping Metrics
        # ====================================================================
        self.auth_failures_total = Counter(
            "devclip_auth_failures_total",
            "API key authentication failures",
            [MetricLabels.REASON],
        )

        self.usage_log_failures_total = Counter(
            "devclip_usage_log_failures_total",
            "Usage records that could not be written after a billed operation",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "devclip_errors_total",
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

    def record_operation(self, operation: str, outcome: str, duration: float | None = None) -> None:
        """Record a pipeline terminal state for an operation."""
        self.operations_total.labels(operation=operation, outcome=outcome).inc()
        if duration is not None:
            self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_debit(self, operation: str, plan_tier: str, amount: int) -> None:
        """Record credits debited."""
        self.credits_debited_total.labels(operation=operation, plan_tier=plan_tier).inc(amount)

    def record_ai_request(
        self, model: str, success: bool, duration: float, total_tokens: int = 0
    ) -> None:
        """Record a completion provider call."""
        self.ai_requests_total.labels(model=model, success=str(success)).inc()
        self.ai_request_duration_seconds.labels(model=model).observe(duration)
        if total_tokens:
            self.ai_tokens_total.labels(model=model).inc(total_tokens)

    def record_auth_failure(self, reason: str) -> None:
        """Record an authentication failure."""
        self.auth_failures_total.labels(reason=reason).inc()

    def record_usage_log_failure(self, operation: str) -> None:
        """Record a swallowed usage-record write failure."""
        self.usage_log_failures_total.labels(operation=operation).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = DevClipMetrics()
