#!/usr/bin/env python3
"""Tests for configuration loading and command-line flags."""
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from labelproxy.config import Config, load_config
from labelproxy.errors import ConfigError
from labelproxy.main import build_config, parse_args


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("NODE", "LOG_LEVEL", "KUBECONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_node_exporter_setup(monkeypatch):
    monkeypatch.setenv("NODE", "node-1")
    config = load_config()
    assert config.node == "node-1"
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9101
    assert config.upstream.url == "http://localhost:9100/metrics"
    assert config.kubernetes.kubeconfig is None
    assert config.kubernetes.resync_period_s == 600
    assert config.global_.log_level == "INFO"


def test_missing_node_is_fatal():
    with pytest.raises(ConfigError):
        load_config()


def test_empty_node_is_fatal(monkeypatch):
    monkeypatch.setenv("NODE", "")
    with pytest.raises(ConfigError):
        load_config()

    with pytest.raises(ConfigError):
        load_config(overrides={"node": "   "})


def test_config_is_immutable():
    config = Config(node="node-1")
    with pytest.raises(ValidationError):
        config.node = "node-2"


def test_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "node": "node-from-file",
        "global": {"log_level": "debug"},
        "server": {"port": 9200},
        "upstream": {"port": 9300, "timeout_s": 5},
        "kubernetes": {"resync_period_s": 60},
    }))

    config = load_config(str(path))
    assert config.node == "node-from-file"
    assert config.global_.log_level == "DEBUG"
    assert config.server.port == 9200
    assert config.upstream.url == "http://localhost:9300/metrics"
    assert config.upstream.timeout_s == 5
    assert config.kubernetes.resync_period_s == 60


def test_missing_yaml_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"))


def test_precedence_file_env_flags(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"node": "file-node", "server": {"port": 9200}}))
    monkeypatch.setenv("NODE", "env-node")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    config = load_config(str(path), overrides={"server.port": 9300, "global.log_level": None})
    assert config.node == "env-node"
    assert config.server.port == 9300
    assert config.global_.log_level == "WARNING"

    config = load_config(str(path), overrides={"node": "flag-node"})
    assert config.node == "flag-node"


def test_invalid_values_rejected(monkeypatch):
    monkeypatch.setenv("NODE", "node-1")
    with pytest.raises(ConfigError):
        load_config(overrides={"server.port": 70000})
    with pytest.raises(ConfigError):
        load_config(overrides={"global.log_level": "chatty"})
    with pytest.raises(ConfigError):
        load_config(overrides={"upstream.path": "metrics"})


def test_command_line_flags(monkeypatch):
    monkeypatch.setenv("NODE", "node-1")
    args = parse_args([
        "--host", "127.0.0.1",
        "--port", "9999",
        "--node-exporter-port", "9200",
        "--kubeconfig", "/tmp/kubeconfig",
    ])
    config = build_config(args)
    assert config.node == "node-1"
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 9999
    assert config.upstream.url == "http://localhost:9200/metrics"
    assert config.kubernetes.kubeconfig == "/tmp/kubeconfig"


def test_example_config_loads():
    """The shipped example configuration is valid."""
    path = Path(__file__).parent.parent / "configs" / "example.yaml"
    config = load_config(str(path))
    assert config.node == "worker-1"
    assert config.upstream.url == "http://localhost:9100/metrics"


def test_empty_yaml_section_with_env_override(tmp_path, monkeypatch):
    """An empty section in the file still accepts environment values."""
    path = tmp_path / "config.yaml"
    path.write_text("node: node-1\nkubernetes:\nglobal: null\n")
    monkeypatch.setenv("KUBECONFIG_PATH", "/etc/kube/config")
    monkeypatch.setenv("LOG_LEVEL", "error")

    config = load_config(str(path))
    assert config.kubernetes.kubeconfig == "/etc/kube/config"
    assert config.kubernetes.resync_period_s == 600
    assert config.global_.log_level == "ERROR"


def test_non_mapping_section_rejected(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("node: node-1\nkubernetes: in-cluster\n")
    monkeypatch.setenv("KUBECONFIG_PATH", "/etc/kube/config")

    with pytest.raises(ConfigError):
        load_config(str(path))
