from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter, Histogram, Info


@dataclass(frozen=True)
class JanitorMetrics:
    """Prometheus metrics exported by the service on ``/metrics``.

    Operation counters are labelled with the response status tag so operators
    can alert on FAILED rates per operation.
    """

    operations_total: Counter = field(
        default_factory=lambda: Counter(
            "janitor_operations_total",
            "Total janitor operations by final status",
            ["operation", "status"],
        )
    )
    operation_duration_seconds: Histogram = field(
        default_factory=lambda: Histogram(
            "janitor_operation_duration_seconds",
            "Janitor operation duration in seconds",
            ["operation"],
        )
    )
    objects_applied_total: Counter = field(
        default_factory=lambda: Counter(
            "janitor_objects_applied_total",
            "Total cluster objects created, replaced or patched",
            ["kind", "action"],
        )
    )
    teardown_delete_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "janitor_teardown_delete_errors_total",
            "Total object deletions that failed during a best-effort teardown",
            ["kind"],
        )
    )
    http_requests_total: Counter = field(
        default_factory=lambda: Counter(
            "janitor_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )
    )
    http_request_duration_seconds: Histogram = field(
        default_factory=lambda: Histogram(
            "janitor_http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path"],
        )
    )
    build_info: Info = field(
        default_factory=lambda: Info(
            "janitor_build",
            "Build information for the janitor service",
        )
    )


METRICS = JanitorMetrics()
