"""agentmem: tiered conversational memory for AI agents.

Short-term dialogue buffers, working-memory document caches and long-term
semantic memory, merged into token-budgeted prompt context.
"""

__version__ = "0.1.0"

# Logging exports
from agentmem.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Error exports
from agentmem.errors import (
    AgentMemError,
    CompletionError,
    ConfigurationError,
    FatalError,
    MemoryCorruptionError,
    RetryableError,
    SemanticStoreError,
    StoreError,
    ValidationError,
)

# Config exports
from agentmem.config import Config, MemoryConfig, load_config

# Metrics exports
from agentmem.metrics import (
    MetricsCollector,
    get_metrics_collector,
    start_metrics_server,
)

# Memory exports
from agentmem.memory import (
    AddMemoryRequest,
    ConsolidationRequest,
    ConsolidationResult,
    GetMemoryRequest,
    LoadedDocument,
    MemoryContext,
    MemoryOrchestrator,
    MemoryStats,
    MemoryTier,
    RetrievedChunk,
    Role,
)

# Task exports
from agentmem.tasks import BackgroundTaskRunner

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    # Errors
    "AgentMemError",
    "RetryableError",
    "FatalError",
    "ValidationError",
    "ConfigurationError",
    "StoreError",
    "MemoryCorruptionError",
    "SemanticStoreError",
    "CompletionError",
    # Config
    "Config",
    "MemoryConfig",
    "load_config",
    # Metrics
    "MetricsCollector",
    "get_metrics_collector",
    "start_metrics_server",
    # Memory
    "AddMemoryRequest",
    "ConsolidationRequest",
    "ConsolidationResult",
    "GetMemoryRequest",
    "LoadedDocument",
    "MemoryContext",
    "MemoryOrchestrator",
    "MemoryStats",
    "MemoryTier",
    "RetrievedChunk",
    "Role",
    # Tasks
    "BackgroundTaskRunner",
]
