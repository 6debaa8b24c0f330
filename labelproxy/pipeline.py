"""Fetch, relabel and assemble one scrape."""
import io
import logging
import time
from typing import List

from labelproxy.errors import (
    FetchError, FormatError, NodeNotFoundError, RequestError, ShortWriteError
)
from labelproxy.relabel import InjectMode, relabel_lines

logger = logging.getLogger(__name__)


def scan_lines(text: str) -> List[str]:
    r"""Split exposition text on "\n" only.

    A final newline does not start an extra line and one trailing "\r" is
    dropped from each line. Other line-break characters stay inside the
    line they appear in.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class RelabelPipeline:
    """Runs one full fetch and relabel per scrape request.

    Either the complete relabeled body is returned or the first error is
    raised; partial output never leaves ``run``.
    """

    def __init__(self, fetcher, cache, node: str, self_metrics=None):
        self.fetcher = fetcher
        self.cache = cache
        self.node = node
        self.self_metrics = self_metrics

    def run(self) -> bytes:
        start = time.time()
        result = "error"
        try:
            body = self._relabel()
            result = "success"
            return body
        finally:
            if self.self_metrics:
                self.self_metrics.record_scrape(result, time.time() - start)

    def _relabel(self) -> bytes:
        raw = self.fetcher.fetch()
        labels = self.cache.lookup(self.node)

        lines = scan_lines(raw.decode("utf-8", errors="surrogateescape"))
        buf = io.StringIO()
        for line in relabel_lines(lines, labels, InjectMode.INJECT):
            written = buf.write(line)
            if written != len(line):
                raise ShortWriteError(len(line), written)

        logger.debug(f"Relabeled {len(lines)} lines with {len(labels)} node labels")
        return buf.getvalue().encode("utf-8", errors="surrogateescape")


def describe_failure(error: RequestError) -> str:
    """Diagnostic text returned to the scraper for a failed request."""
    if isinstance(error, FetchError):
        return f"failed to get metrics from node exporter: {error}"
    if isinstance(error, NodeNotFoundError):
        return f"failed to get node labels: {error}"
    if isinstance(error, FormatError):
        return f"failed to append node labels to metric: {error}"
    return f"failed to relabel metrics: {error}"
