"""Exception hierarchy for the label proxy."""
from typing import Optional


class LabelProxyError(Exception):
    """Base class for all label proxy errors."""


class StartupError(LabelProxyError):
    """The process cannot start serving traffic."""


class ConfigError(StartupError):
    """Configuration is missing or invalid."""


class KubeConfigError(StartupError):
    """Kubernetes credentials could not be loaded."""


class CacheSyncError(StartupError):
    """The node label cache did not finish its first sync in time."""


class RequestError(LabelProxyError):
    """A single scrape failed. Reported as HTTP 500, never fatal."""


class FetchError(RequestError):
    """Fetching metrics from the upstream agent failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NodeNotFoundError(RequestError):
    """The node is not present in the label mirror."""

    def __init__(self, node: str):
        super().__init__(f"can't find node {node} in the store")
        self.node = node


class FormatError(RequestError):
    """A bare sample line did not split into exactly a name and a value."""

    def __init__(self, line: str):
        super().__init__(f"malformed sample line: expected 'name value', got {line!r}")
        self.line = line


class ShortWriteError(RequestError):
    """Fewer bytes were written to the response buffer than expected."""

    def __init__(self, expected: int, written: int):
        super().__init__(
            f"expect to write {expected} bytes into buffer, but actually write {written}"
        )
        self.expected = expected
        self.written = written
