"""Exception hierarchy for agentmem.

Errors are split into two branches:
- RetryableError: transient collaborator failures (keyed store, semantic
  store, completion endpoint) that a caller may retry.
- FatalError: permanent failures (corrupt stored data, invalid input or
  configuration) that will not succeed on retry.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AgentMemError(Exception):
    """Base exception for all agentmem errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }


class RetryableError(AgentMemError):
    """Errors that can be retried (transient failures)."""

    def __init__(self, message: str, code: str = "RETRYABLE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details, recoverable=True)


class FatalError(AgentMemError):
    """Errors that cannot be retried (permanent failures)."""

    def __init__(self, message: str, code: str = "FATAL", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details, recoverable=False)


class ValidationError(FatalError):
    """Input validation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class ConfigurationError(FatalError):
    """Invalid or unloadable configuration."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class StoreError(RetryableError):
    """Keyed store (Redis) read or write failure."""

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, code="STORE_ERROR", details=details)


class MemoryCorruptionError(FatalError):
    """A stored memory container could not be decoded."""

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, code="MEMORY_CORRUPTION", details=details)


class SemanticStoreError(RetryableError):
    """Semantic store request failed."""

    def __init__(
        self,
        message: str,
        collection_id: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if collection_id:
            details["collection_id"] = collection_id
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, code="SEMANTIC_STORE_ERROR", details=details)


class CompletionError(RetryableError):
    """Text completion request failed or returned no usable choice."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, code="COMPLETION_ERROR", details=details)
