"""Configuration loading and validation."""

from agentmem.config.loader import (
    Config,
    MemoryConfig,
    RedisConfig,
    RouterConfig,
    SemanticStoreConfig,
    SystemConfig,
    env_overrides,
    load_config,
)

__all__ = [
    # Main config
    "load_config",
    "env_overrides",
    "Config",
    # Config sections
    "SystemConfig",
    "RedisConfig",
    "SemanticStoreConfig",
    "RouterConfig",
    "MemoryConfig",
]
