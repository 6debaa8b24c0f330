"""Local mirror of Kubernetes node labels, kept current by list and watch."""
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional
import logging
import threading
import time

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from labelproxy.errors import CacheSyncError, KubeConfigError, NodeNotFoundError

logger = logging.getLogger(__name__)

HTTP_STATUS_GONE = 410

# Watch.stream clears its stop flag when it starts, so stop() repeats it.
STOP_POLL_S = 0.1

# Read timeout beyond the server-side watch timeout, for half-open connections.
WATCH_READ_SLACK_S = 30

EMPTY_LABELS: Mapping[str, str] = MappingProxyType({})


def create_core_api(kubeconfig: Optional[str] = None) -> client.CoreV1Api:
    """Build a CoreV1Api from in-cluster credentials or a kubeconfig file."""
    try:
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
            logger.info(f"Loaded Kubernetes credentials from {kubeconfig}")
        else:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes credentials")
    except (config.ConfigException, OSError) as e:
        raise KubeConfigError(f"failed to load Kubernetes credentials: {e}") from e

    return client.CoreV1Api()


def _freeze_labels(node: Any) -> Mapping[str, str]:
    labels = node.metadata.labels or {}
    return MappingProxyType(dict(labels))


class NodeLabelCache:
    """Mirrors the labels of one Kubernetes node.

    A daemon thread lists the node, then watches it until the server closes
    the watch (every ``resync_period_s``) or the watch fails, and relists.
    That thread is the only writer. ``lookup`` reads the mirror under a lock
    and never touches the network.
    """

    def __init__(self, core_api, node: str, resync_period_s: int = 600,
                 retry_backoff_s: float = 5.0,
                 watch_factory: Callable[[], Any] = watch.Watch,
                 self_metrics=None):
        if not node:
            raise ValueError("node name should not be empty")

        self.core_api = core_api
        self.node = node
        self.resync_period_s = resync_period_s
        self.retry_backoff_s = retry_backoff_s
        self.watch_factory = watch_factory
        self.self_metrics = self_metrics

        self._labels: Dict[str, Mapping[str, str]] = {}
        self._lock = threading.Lock()
        self._synced = threading.Event()
        self._stopped = threading.Event()
        self._watch = None
        self._thread: Optional[threading.Thread] = None

    @property
    def field_selector(self) -> str:
        return f"metadata.name={self.node}"

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._labels)

    def lookup(self, node: str) -> Mapping[str, str]:
        """Return the current label set of ``node``.

        Raises:
            NodeNotFoundError: if the node is not in the mirror.
        """
        with self._lock:
            labels = self._labels.get(node)
        if labels is None:
            raise NodeNotFoundError(node)
        return labels

    def replace(self, nodes) -> None:
        """Replace the whole mirror with the result of a full list."""
        labels = {n.metadata.name: _freeze_labels(n) for n in nodes}
        with self._lock:
            self._labels = labels
        if self.self_metrics:
            self.self_metrics.record_resync()
        logger.debug(f"Node mirror replaced with {len(labels)} node(s)")

    def apply_event(self, event: Dict[str, Any]) -> None:
        """Apply one watch event to the mirror."""
        event_type = event["type"]
        if event_type == "BOOKMARK":
            return

        node = event["object"]
        name = node.metadata.name

        if event_type in ("ADDED", "MODIFIED"):
            labels = _freeze_labels(node)
            with self._lock:
                self._labels[name] = labels
        elif event_type == "DELETED":
            with self._lock:
                self._labels.pop(name, None)
            logger.warning(f"Node {name} was deleted from the cluster")
        else:
            logger.warning(f"Ignoring unknown watch event type {event_type} for node {name}")
            return

        if self.self_metrics:
            self.self_metrics.record_cache_event(event_type)
        logger.debug(f"Applied {event_type} for node {name}")

    def start(self, timeout_s: float = 60.0) -> None:
        """Start the watch thread and block until the first list is applied.

        Raises:
            CacheSyncError: if the first sync does not finish in ``timeout_s``.
        """
        self._thread = threading.Thread(
            target=self._run,
            name="node-label-watch",
            daemon=True
        )
        self._thread.start()

        if not self._synced.wait(timeout_s):
            self.stop()
            raise CacheSyncError(f"failed to sync node cache within {timeout_s}s")

        logger.info(f"Node label cache synced for node {self.node}")

    def stop(self, join_timeout_s: float = 5.0) -> None:
        """Stop the watch thread and close its connection."""
        self._stopped.set()
        self._stop_active_watch()
        if self._thread is not None and self._thread is not threading.current_thread():
            deadline = time.time() + join_timeout_s
            while self._thread.is_alive() and time.time() < deadline:
                self._thread.join(STOP_POLL_S)
                self._stop_active_watch()
            if self._thread.is_alive():
                logger.warning("Node watch thread did not exit before the join timeout")
        logger.info("Node label cache stopped")

    def _stop_active_watch(self):
        with self._lock:
            active_watch = self._watch
        if active_watch is not None:
            active_watch.stop()

    def _run(self):
        while not self._stopped.is_set():
            try:
                resource_version = self._list()
                self._synced.set()
                self._watch_from(resource_version)
            except ApiException as e:
                if e.status == HTTP_STATUS_GONE:
                    logger.info("Node watch resource version expired, relisting")
                    continue
                logger.error(f"Kubernetes API error in node watch: {e.status} {e.reason}")
                self._stopped.wait(self.retry_backoff_s)
            except Exception as e:
                logger.error(f"Node watch failed: {e}", exc_info=True)
                self._stopped.wait(self.retry_backoff_s)

    def _list(self) -> str:
        node_list = self.core_api.list_node(field_selector=self.field_selector)
        self.replace(node_list.items)
        return node_list.metadata.resource_version

    def _watch_from(self, resource_version: str) -> None:
        w = self.watch_factory()
        with self._lock:
            if self._stopped.is_set():
                return
            self._watch = w
        stream = w.stream(
            self.core_api.list_node,
            field_selector=self.field_selector,
            resource_version=resource_version,
            timeout_seconds=self.resync_period_s,
            _request_timeout=self.resync_period_s + WATCH_READ_SLACK_S,
        )
        try:
            for event in stream:
                if self._stopped.is_set():
                    break
                if event["type"] == "ERROR":
                    logger.warning(f"Node watch returned an error event: {event.get('raw_object')}")
                    break
                self.apply_event(event)
        finally:
            # closing the generator releases the watch's HTTP response
            stream.close()
            w.stop()
            with self._lock:
                self._watch = None
        logger.debug("Node watch ended, resyncing")
