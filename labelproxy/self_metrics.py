"""Self-monitoring metrics for the label proxy, using prometheus_client."""
from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram, generate_latest
)


class SelfMetrics:
    """Counters about scrapes and the node label cache.

    Kept on a private registry so they never mix with the relabeled
    node-exporter output served on /metrics.
    """

    def __init__(self, registry=None, prefix="labelproxy_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.scrapes_total = Counter(
            f"{prefix}scrapes_total",
            "Total number of relabel scrapes by result",
            ["result"],
            registry=registry
        )

        self.scrape_duration_seconds = Histogram(
            f"{prefix}scrape_duration_seconds",
            "Duration of a full fetch and relabel in seconds",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=registry
        )

        self.cache_events_total = Counter(
            f"{prefix}cache_events_total",
            "Node watch events applied to the label cache",
            ["type"],
            registry=registry
        )

        self.cache_resyncs_total = Counter(
            f"{prefix}cache_resyncs_total",
            "Full node lists applied to the label cache",
            registry=registry
        )

        self.cache_synced = Gauge(
            f"{prefix}cache_synced",
            "1 once the label cache has completed its first sync",
            registry=registry
        )

    def record_scrape(self, result: str, duration: float):
        """Record one finished scrape."""
        self.scrapes_total.labels(result=result).inc()
        self.scrape_duration_seconds.observe(duration)

    def record_cache_event(self, event_type: str):
        self.cache_events_total.labels(type=event_type).inc()

    def record_resync(self):
        self.cache_resyncs_total.inc()
        self.cache_synced.set(1)

    def render(self) -> bytes:
        """Render the registry in text exposition format."""
        return generate_latest(self.registry)
