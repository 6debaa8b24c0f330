"""Fetch raw metrics from the local node-exporter."""
from typing import Optional
import logging

import httpx

from labelproxy.config import UpstreamConfig
from labelproxy.errors import FetchError

logger = logging.getLogger(__name__)


class MetricFetcher:
    """Issues one GET per scrape against the node-exporter endpoint."""

    def __init__(self, url: str, timeout_s: Optional[float] = 30.0,
                 client: Optional[httpx.Client] = None):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_s))

    @classmethod
    def from_config(cls, config: UpstreamConfig) -> "MetricFetcher":
        return cls(config.url, timeout_s=config.timeout_s)

    def fetch(self) -> bytes:
        """Return the full response body.

        Raises:
            FetchError: on transport failure or a non-2xx status. The body
                is read to the end and the connection released either way.
        """
        try:
            with self._client.stream("GET", self.url) as response:
                body = response.read()
                if not response.is_success:
                    raise FetchError(
                        f"node exporter returned HTTP status "
                        f"{response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                    )
        except httpx.HTTPError as e:
            logger.debug(f"GET {self.url} failed: {e}")
            raise FetchError(f"GET {self.url} failed: {e}") from e

        return body

    def close(self):
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            self._client.close()
