"""Configuration models using Pydantic for validation."""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import os

from labelproxy.errors import ConfigError


class ServerConfig(BaseModel):
    """Listener for the /metrics and /healthz endpoints."""
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = Field(default=9101, ge=1, le=65535)


class UpstreamConfig(BaseModel):
    """Local node-exporter the metrics are fetched from."""
    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(default=9100, ge=1, le=65535)
    path: str = "/metrics"
    timeout_s: Optional[float] = Field(default=30.0, gt=0)  # None disables the timeout

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        if not v.startswith("/"):
            raise ValueError("upstream path must start with '/'")
        return v

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"


class KubernetesConfig(BaseModel):
    """Kubernetes API access and node watch behaviour."""
    model_config = ConfigDict(frozen=True)

    kubeconfig: Optional[str] = None  # None means in-cluster service account
    resync_period_s: int = Field(default=600, gt=0)
    sync_timeout_s: float = Field(default=60.0, gt=0)
    retry_backoff_s: float = Field(default=5.0, gt=0)


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    model_config = ConfigDict(frozen=True)

    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Config(BaseModel):
    """Root configuration model, built once at startup."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    node: str
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    server: ServerConfig = Field(default_factory=ServerConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)

    @field_validator('node')
    @classmethod
    def validate_node(cls, v):
        """The node name identifies the mirrored node and must be set."""
        v = v.strip()
        if not v:
            raise ValueError("node name should not be empty")
        return v


def _set_nested(raw: Dict[str, Any], section: str, key: str, value: Any) -> None:
    # An empty YAML section ("kubernetes:") loads as None
    if raw.get(section) is None:
        raw[section] = {}
    elif not isinstance(raw[section], dict):
        raise ConfigError(f"Configuration section '{section}' must be a mapping")
    raw[section][key] = value


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Config:
    """Load and validate configuration.

    Values are layered: defaults, then the optional YAML file, then
    environment variables, then ``overrides`` (dotted keys such as
    ``"server.port"``, usually from command-line flags). ``None`` values in
    ``overrides`` are ignored.
    """
    raw_config: Dict[str, Any] = {}

    if config_path:
        import yaml

        if not os.path.exists(config_path):
            raise ConfigError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")

    # Apply environment variable overrides
    if env_node := os.getenv('NODE'):
        raw_config['node'] = env_node

    if env_log_level := os.getenv('LOG_LEVEL'):
        _set_nested(raw_config, 'global', 'log_level', env_log_level)

    if env_kubeconfig := os.getenv('KUBECONFIG_PATH'):
        _set_nested(raw_config, 'kubernetes', 'kubeconfig', env_kubeconfig)

    for dotted, value in (overrides or {}).items():
        if value is None:
            continue
        if "." in dotted:
            section, key = dotted.split(".", 1)
            _set_nested(raw_config, section, key, value)
        else:
            raw_config[dotted] = value

    if 'node' not in raw_config:
        raise ConfigError("node name should not be empty: set NODE or --node")

    try:
        return Config(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
