"""
Shared metrics configuration for the OBO token broker.
"""

from prometheus_client import REGISTRY, Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_broker_metrics()

    def _setup_broker_metrics(self):
        """Set up token broker metrics."""
        self._metrics["token_validations_total"] = Counter(
            "token_validations_total",
            "Total inbound token validations",
            ["status"],
            registry=self.registry
        )

        self._metrics["obo_cache_lookups_total"] = Counter(
            "obo_cache_lookups_total",
            "OBO token cache lookups",
            ["result"],
            registry=self.registry
        )

        self._metrics["obo_token_exchanges_total"] = Counter(
            "obo_token_exchanges_total",
            "OBO token exchange calls",
            ["status"],
            registry=self.registry
        )

        self._metrics["obo_token_exchange_duration_seconds"] = Histogram(
            "obo_token_exchange_duration_seconds",
            "OBO token exchange duration in seconds",
            registry=self.registry
        )

        self._metrics["downstream_requests_total"] = Counter(
            "downstream_requests_total",
            "Downstream OData requests",
            ["method", "status_code"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_token_validation(self, status: str):
        self._metrics["token_validations_total"].labels(status=status).inc()

    def record_cache_lookup(self, result: str):
        self._metrics["obo_cache_lookups_total"].labels(result=result).inc()

    def record_token_exchange(self, status: str, duration: float):
        self._metrics["obo_token_exchanges_total"].labels(status=status).inc()
        self._metrics["obo_token_exchange_duration_seconds"].observe(duration)

    def record_downstream_request(self, method: str, status_code: int):
        self._metrics["downstream_requests_total"].labels(
            method=method,
            status_code=str(status_code)
        ).inc()


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to the default registry are memoised per service name;
    prometheus_client refuses to register the same metric name twice. Pass a
    private ``registry`` to get an unshared collector.
    """
    if registry is not None and registry is not REGISTRY:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        collector = _collectors.get(service_name)
        if collector is None:
            collector = MetricsCollector(service_name)
            _collectors[service_name] = collector
        return collector
