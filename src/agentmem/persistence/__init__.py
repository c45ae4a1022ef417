"""Persistence layer for agentmem.

Provides abstract storage interfaces and implementations for:
- Redis keyed storage of short-term and working memory
- HTTP semantic store client for long-term memory
- In-memory stores for tests and development
"""

from agentmem.persistence.interface import KeyValueStore, SemanticRecord, SemanticStore
from agentmem.persistence.memory_backend import InMemoryKeyValueStore, InMemorySemanticStore
from agentmem.persistence.redis_backend import RedisKeyValueStore
from agentmem.persistence.semantic_client import HTTPSemanticStore

__all__ = [
    "KeyValueStore",
    "SemanticRecord",
    "SemanticStore",
    "InMemoryKeyValueStore",
    "InMemorySemanticStore",
    "RedisKeyValueStore",
    "HTTPSemanticStore",
]
