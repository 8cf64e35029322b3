"""
Prometheus metrics for the reservation engine.

Service operation timings come from the @measure_operation decorator; domain
counters record the outcomes callers care about (conflicts, sell-outs,
redemption failures) so contention is visible without reading logs.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "spa_engine_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "spa_engine_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "spa_engine_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Domain-specific counters
bookings_total = Counter(
    "spa_engine_bookings_total",
    "Booking creation attempts by outcome",
    ["outcome"],  # created | slot_conflict | voucher_invalid
    registry=REGISTRY,
)

booking_status_transitions_total = Counter(
    "spa_engine_booking_status_transitions_total",
    "Booking status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

vouchers_purchased_total = Counter(
    "spa_engine_vouchers_purchased_total",
    "Voucher purchase attempts by outcome",
    ["outcome"],  # issued | sold_out
    registry=REGISTRY,
)

voucher_redemptions_total = Counter(
    "spa_engine_voucher_redemptions_total",
    "Voucher redemption attempts by outcome",
    ["outcome"],  # redeemed | expired | not_active | insufficient_balance | ...
    registry=REGISTRY,
)

transaction_retries_total = Counter(
    "spa_engine_transaction_retries_total",
    "Transient storage conflicts retried inside a service transaction",
    ["operation"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    # Domain helpers
    @staticmethod
    def inc_booking(outcome: str) -> None:
        bookings_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_status_transition(from_status: str, to_status: str) -> None:
        booking_status_transitions_total.labels(
            from_status=from_status, to_status=to_status
        ).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_voucher_purchase(outcome: str) -> None:
        vouchers_purchased_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_voucher_redemption(outcome: str) -> None:
        voucher_redemptions_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_transaction_retry(operation: str) -> None:
        transaction_retries_total.labels(operation=operation).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
