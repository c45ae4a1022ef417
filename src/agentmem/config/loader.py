"""Configuration loader for agentmem.

Loads a YAML configuration file, layers an optional environment overlay and
``AGENTMEM_*`` environment variables on top, and validates the result
against Pydantic models.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import pydantic
import yaml
from pydantic import BaseModel, Field

from agentmem.errors import ConfigurationError

CONFIG_FILE_NAME = "agentmem.yaml"
ENV_PREFIX = "AGENTMEM_"


class SystemConfig(BaseModel):
    """Global system configuration."""

    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR)$")
    log_format: str = Field(default="console", pattern=r"^(json|console)$")
    metrics_port: Optional[int] = Field(default=None, ge=1, le=65535)


class RedisConfig(BaseModel):
    """Keyed store connection configuration."""

    url: str = Field(default="redis://localhost:6379/0")
    max_connections: int = Field(default=50, ge=1)
    socket_connect_timeout: float = Field(default=5.0, gt=0)


class SemanticStoreConfig(BaseModel):
    """Semantic (vector) store connection configuration."""

    base_url: str = Field(default="http://localhost:8000")
    api_key: Optional[str] = Field(default=None)
    timeout_ms: int = Field(default=30000, ge=1000, le=300000)


class RouterConfig(BaseModel):
    """Text completion endpoint configuration."""

    base_url: str = Field(default="http://localhost:8081")
    api_key: Optional[str] = Field(default=None)
    timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    model: Optional[str] = Field(default=None, description="Model name sent with each request")


class MemoryConfig(BaseModel):
    """Tier ceilings, lifetimes and consolidation policy."""

    # Short-term memory
    short_term_max_tokens: int = Field(default=4000, ge=1)
    short_term_ttl_seconds: int = Field(default=3600, ge=1)
    short_term_max_entries: int = Field(default=50, ge=1)

    # Working memory
    working_memory_max_tokens: int = Field(default=8000, ge=1)
    working_memory_ttl_seconds: int = Field(default=1800, ge=1)
    max_loaded_documents: int = Field(default=10, ge=1)
    auto_refresh_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    # Long-term memory
    long_term_enabled: bool = Field(default=True)
    max_long_term_entries: int = Field(default=1000, ge=1)
    long_term_search_top_k: int = Field(default=5, ge=1)
    formatted_long_term_top_k: int = Field(default=3, ge=1)

    # Consolidation
    consolidation_interval_seconds: int = Field(default=300, ge=60)
    consolidation_marker_ttl_seconds: int = Field(default=86400, ge=1)
    summary_min_tokens: int = Field(default=500, ge=0)
    summary_max_tokens: int = Field(default=500, ge=1)
    fact_max_tokens: int = Field(default=500, ge=1)
    extract_facts: bool = Field(default=False, description="Extract facts during background consolidation")

    # Background consolidation runner
    background_max_concurrency: int = Field(default=4, ge=1)
    background_max_pending: int = Field(default=100, ge=1)

    key_prefix: str = Field(default="memory", min_length=1)


class Config(BaseModel):
    """Complete agentmem configuration."""

    version: str = Field(default="1.0")
    environment: str = Field(default="development")

    system: SystemConfig = Field(default_factory=SystemConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    semantic_store: SemanticStoreConfig = Field(default_factory=SemanticStoreConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)


def load_config(
    config_path: Optional[Path | str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load configuration from a YAML file or directory.

    Args:
        config_path: A YAML file, or a directory containing ``agentmem.yaml``.
            When omitted only defaults and environment variables apply.
        environ: Environment mapping to read overrides from. Defaults to
            ``os.environ``.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config_path doesn't exist.
        ConfigurationError: If configuration is invalid.
    """
    data: Dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config path not found: {config_path}")

        config_dir = config_path if config_path.is_dir() else config_path.parent
        main_file = config_path / CONFIG_FILE_NAME if config_path.is_dir() else config_path
        data = _read_yaml(main_file)

        # Load environment overlay
        env = data.get("environment", "development")
        env_file = config_dir / "environments" / f"{env}.yaml"
        if env_file.exists():
            _deep_merge(data, _read_yaml(env_file))

    _deep_merge(data, env_overrides(os.environ if environ is None else environ))

    try:
        return Config(**data)
    except pydantic.ValidationError as e:
        raise ConfigurationError(
            "Invalid agentmem configuration",
            details={"errors": e.errors(include_url=False)},
        ) from e


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect ``AGENTMEM_<SECTION>__<FIELD>`` variables into a nested dict.

    Example:
        ``AGENTMEM_REDIS__URL=redis://cache:6379/1`` becomes
        ``{"redis": {"url": "redis://cache:6379/1"}}``.
    """
    overrides: Dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = name[len(ENV_PREFIX):].lower().split("__")
        if len(path) != 2 or not all(path):
            continue
        section, field = path
        overrides.setdefault(section, {})[field] = value
    return overrides


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", details={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping", details={"path": str(path)})
    return data


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
