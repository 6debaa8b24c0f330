"""HTTP endpoints for the label proxy using FastAPI."""
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
import logging

from labelproxy.errors import RequestError
from labelproxy.pipeline import RelabelPipeline, describe_failure
from labelproxy.self_metrics import SelfMetrics

logger = logging.getLogger(__name__)

EXPOSITION_CONTENT_TYPE = "text/plain; version=0.0.4"


class ProxyAPI:
    """FastAPI app serving relabeled metrics and a liveness check."""

    def __init__(self, pipeline: RelabelPipeline, self_metrics: Optional[SelfMetrics] = None):
        """
        Initialize the proxy API.

        Args:
            pipeline: Pipeline run once per /metrics request
            self_metrics: Optional proxy self-metrics served on /selfmetrics
        """
        self.pipeline = pipeline
        self.self_metrics = self_metrics
        self.app = FastAPI(title="Node Label Proxy")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz", response_class=PlainTextResponse)
        def healthz():
            """Liveness check, no dependency checks."""
            return "OK"

        # Plain def so concurrent scrapes run on the worker thread pool.
        @self.app.get("/metrics")
        def metrics():
            """Relabeled node-exporter metrics."""
            try:
                body = self.pipeline.run()
            except RequestError as e:
                message = describe_failure(e)
                logger.error(message)
                return PlainTextResponse(message, status_code=500)

            return Response(
                content=body,
                status_code=200,
                headers={"Content-Type": EXPOSITION_CONTENT_TYPE},
            )

        @self.app.get("/selfmetrics")
        def selfmetrics():
            """Metrics about the proxy itself."""
            if self.self_metrics is None:
                return PlainTextResponse("self metrics disabled", status_code=404)
            return Response(
                content=self.self_metrics.render(),
                headers={"Content-Type": CONTENT_TYPE_LATEST},
            )

    def run(self, host: str = "0.0.0.0", port: int = 9101):
        """Run the API server until SIGINT/SIGTERM."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
