#!/usr/bin/env python3
"""Tests for the /metrics, /healthz and /selfmetrics endpoints."""
from fastapi.testclient import TestClient
from kubernetes.client import V1Node, V1ObjectMeta

from labelproxy.errors import FetchError
from labelproxy.node_cache import NodeLabelCache
from labelproxy.pipeline import RelabelPipeline
from labelproxy.proxy_api import ProxyAPI
from labelproxy.self_metrics import SelfMetrics


class FakeFetcher:
    def __init__(self, body=b"", error=None):
        self.body = body
        self.error = error

    def fetch(self):
        if self.error is not None:
            raise self.error
        return self.body


def make_client(fetcher, labels=None, self_metrics=None):
    cache = NodeLabelCache(object(), "node-1")
    if labels is not None:
        cache.replace([V1Node(metadata=V1ObjectMeta(name="node-1", labels=labels))])
    pipeline = RelabelPipeline(fetcher, cache, "node-1", self_metrics=self_metrics)
    return TestClient(ProxyAPI(pipeline, self_metrics=self_metrics).app)


def test_healthz():
    client = make_client(FakeFetcher(error=FetchError("down")))
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.text == "OK"


def test_metrics_success():
    client = make_client(FakeFetcher(b"# TYPE up gauge\nup 1\n"), {"zone": "us-east1"})
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"] == "text/plain; version=0.0.4"
    assert response.text == '# TYPE up gauge\nup{zone="us-east1"} 1\n'


def test_metrics_fetch_failure():
    error = FetchError("node exporter returned HTTP status 503 Service Unavailable", status_code=503)
    client = make_client(FakeFetcher(error=error), {"zone": "a"})
    response = client.get("/metrics")
    assert response.status_code == 500
    assert response.text.startswith("failed to get metrics from node exporter: ")
    assert "503" in response.text


def test_metrics_node_not_found():
    client = make_client(FakeFetcher(b"up 1\n"))
    response = client.get("/metrics")
    assert response.status_code == 500
    assert response.text.startswith("failed to get node labels: ")
    assert "node-1" in response.text


def test_metrics_malformed_line():
    client = make_client(FakeFetcher(b"up 1\nbad line with spaces\n"), {"zone": "a"})
    response = client.get("/metrics")
    assert response.status_code == 500
    assert response.text.startswith("failed to append node labels to metric: ")
    assert "up{" not in response.text


def test_selfmetrics():
    metrics = SelfMetrics()
    client = make_client(FakeFetcher(b"up 1\n"), {"zone": "a"}, self_metrics=metrics)
    client.get("/metrics")

    response = client.get("/selfmetrics")
    assert response.status_code == 200
    assert 'labelproxy_scrapes_total{result="success"} 1.0' in response.text


def test_selfmetrics_disabled():
    client = make_client(FakeFetcher(b"up 1\n"), {"zone": "a"})
    assert client.get("/selfmetrics").status_code == 404
