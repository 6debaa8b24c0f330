"""Main entry point for the node label proxy."""
import argparse
import logging
import sys

from labelproxy.config import Config, load_config
from labelproxy.errors import StartupError
from labelproxy.fetcher import MetricFetcher
from labelproxy.node_cache import NodeLabelCache, create_core_api
from labelproxy.pipeline import RelabelPipeline
from labelproxy.proxy_api import ProxyAPI
from labelproxy.self_metrics import SelfMetrics


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Node Label Proxy - Add Kubernetes node labels to node-exporter metrics"
    )
    parser.add_argument("--config", "-c", help="Optional configuration YAML file")
    parser.add_argument("--node", help="Node name (default: $NODE)")
    parser.add_argument("--host", help="Host to expose metrics on (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to expose metrics on (default: 9101)")
    parser.add_argument(
        "--node-exporter-port",
        type=int,
        help="Port which node-exporter exposes metrics on (default: 9100)"
    )
    parser.add_argument("--kubeconfig", help="Kubeconfig file (default: in-cluster credentials)")
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """Combine the YAML file, environment and command-line flags."""
    return load_config(args.config, overrides={
        "node": args.node,
        "server.host": args.host,
        "server.port": args.port,
        "upstream.port": args.node_exporter_port,
        "kubernetes.kubeconfig": args.kubeconfig,
        "global.log_level": args.log_level,
    })


def main(argv=None):
    """Main function."""
    args = parse_args(argv)

    # Load configuration
    try:
        config = build_config(args)
    except StartupError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.global_.log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("Node Label Proxy")
    logger.info("=" * 60)
    logger.info(f"Node: {config.node}")
    logger.info(f"Upstream: {config.upstream.url}")
    logger.info(f"Listen: {config.server.host}:{config.server.port}")
    logger.info(f"Resync period: {config.kubernetes.resync_period_s}s")

    self_metrics = SelfMetrics()

    try:
        core_api = create_core_api(config.kubernetes.kubeconfig)
        cache = NodeLabelCache(
            core_api,
            config.node,
            resync_period_s=config.kubernetes.resync_period_s,
            retry_backoff_s=config.kubernetes.retry_backoff_s,
            self_metrics=self_metrics,
        )
        cache.start(timeout_s=config.kubernetes.sync_timeout_s)
    except StartupError as e:
        logger.error(f"construct new metrics handler failed: {e}")
        sys.exit(1)

    fetcher = MetricFetcher.from_config(config.upstream)
    pipeline = RelabelPipeline(fetcher, cache, config.node, self_metrics=self_metrics)
    proxy_api = ProxyAPI(pipeline, self_metrics=self_metrics)

    # uvicorn handles SIGINT/SIGTERM and drains in-flight requests
    logger.info(f"Serving /metrics on {config.server.host}:{config.server.port}")
    try:
        proxy_api.run(host=config.server.host, port=config.server.port)
    finally:
        logger.info("Shutting down...")
        cache.stop()
        fetcher.close()


if __name__ == "__main__":
    main()
