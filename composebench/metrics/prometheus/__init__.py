"""Generic collector scraping a Prometheus metrics endpoint."""

from composebench.metrics.prometheus.collector import TYPE, PrometheusCollector, QueryResult, Sample

__all__ = ["TYPE", "PrometheusCollector", "QueryResult", "Sample", "register"]


def register(registry):
    registry.register(TYPE, PrometheusCollector)
