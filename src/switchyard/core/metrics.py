"""Metrics module for the router.

Provides Prometheus metrics for matching, URL generation and route compilation.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from switchyard.core.config import MetricsConfig

_LATENCY_BUCKETS = (0.00005, 0.0001, 0.00025, 0.0005, 0.001, 0.0025, 0.005, 0.01, 0.05, 0.1)


class RouterMetrics:
    """Router metrics collector using Prometheus."""

    def __init__(self, config: MetricsConfig, registry: CollectorRegistry = REGISTRY):
        """Initialize the metrics collector.

        Args:
            config: Metrics configuration
            registry: Prometheus registry to register the metrics in
        """
        self.config = config
        self.registry = registry

        # Matching metrics
        self.match_total = Counter(
            "switchyard_matches_total",
            "Total number of match attempts",
            ["method", "status"],
            registry=registry,
        )

        self.match_duration = Histogram(
            "switchyard_match_duration_seconds",
            "Route matching latency in seconds",
            ["method"],
            buckets=_LATENCY_BUCKETS,
            registry=registry,
        )

        # Generation metrics
        self.generate_errors = Counter(
            "switchyard_generate_errors_total",
            "Total number of failed URL generations",
            ["error_type"],
            registry=registry,
        )

        # Compilation metrics
        self.compile_duration = Histogram(
            "switchyard_compile_duration_seconds",
            "Dispatch data compilation latency in seconds",
            ["strategy"],
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=registry,
        )

        self.cache_events = Counter(
            "switchyard_cache_events_total",
            "Total number of compiled data cache events",
            ["event"],
            registry=registry,
        )

        self.routes_registered = Gauge(
            "switchyard_routes_registered",
            "Number of registered routes",
            registry=registry,
        )

    def record_match(self, method: str, status: str, duration_seconds: float) -> None:
        """Record a match attempt.

        Args:
            method: HTTP method
            status: Match status value
            duration_seconds: Matching duration in seconds
        """
        self.match_total.labels(method=method, status=status).inc()
        self.match_duration.labels(method=method).observe(duration_seconds)

    def record_generate_error(self, error_type: str) -> None:
        self.generate_errors.labels(error_type=error_type).inc()

    def record_compile(self, strategy: str, duration_seconds: float) -> None:
        self.compile_duration.labels(strategy=strategy).observe(duration_seconds)

    def record_cache_event(self, event: str) -> None:
        """Record a compiled data cache event (hit, miss, write, corrupt, clear)."""
        self.cache_events.labels(event=event).inc()

    def update_routes(self, count: int) -> None:
        self.routes_registered.set(count)

    def export_metrics(self) -> bytes:
        """Export metrics in Prometheus format."""
        return generate_latest(self.registry)


# Global metrics instance (will be initialized by the application)
_router_metrics: RouterMetrics | None = None


def initialize_metrics(config: MetricsConfig) -> RouterMetrics:
    """Initialize the global router metrics.

    Args:
        config: Metrics configuration

    Returns:
        Initialized RouterMetrics instance
    """
    global _router_metrics
    _router_metrics = RouterMetrics(config)
    return _router_metrics


def get_metrics() -> RouterMetrics:
    """Get the global router metrics.

    Raises:
        RuntimeError: If metrics have not been initialized
    """
    if _router_metrics is None:
        raise RuntimeError("Metrics not initialized. Call initialize_metrics() first.")
    return _router_metrics
