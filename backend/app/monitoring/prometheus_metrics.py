"""
Prometheus metrics module for GymApp.

Service operation timings come from the @measure_operation decorator; the
booking ledger additionally records booking outcomes, roster anomalies and
notification delivery results.
"""

from threading import Lock
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
    "gymapp_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "gymapp_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "gymapp_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_outcomes_total = Counter(
    "gymapp_booking_outcomes_total",
    "Booking requests by outcome (created, class_full, duplicate, cancelled, ...)",
    ["outcome"],
    registry=REGISTRY,
)

roster_anomalies_total = Counter(
    "gymapp_roster_anomalies_total",
    "Roster counter drift detected (decrement at zero, reconciliation mismatch)",
    ["kind"],
    registry=REGISTRY,
)

notifications_total = Counter(
    "gymapp_notifications_total",
    "Booking lifecycle notifications handed to the dispatcher",
    ["kind", "status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _lock: Lock = Lock()

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

    @staticmethod
    def inc_booking_outcome(outcome: str) -> None:
        booking_outcomes_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_roster_anomaly(kind: str) -> None:
        roster_anomalies_total.labels(kind=kind).inc()

    @staticmethod
    def record_notification(kind: str, status: str) -> None:
        notifications_total.labels(kind=kind, status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        with PrometheusMetrics._lock:
            return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
