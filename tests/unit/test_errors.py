"""Tests for the agentmem exception hierarchy."""

import pytest

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


class TestHierarchy:
    """Tests for error classification."""

    @pytest.mark.parametrize("error", [
        StoreError("redis down", key="k"),
        SemanticStoreError("semantic down", collection_id="memory_a", status_code=503),
        CompletionError("router down", status_code=502),
    ])
    def test_collaborator_failures_are_retryable(self, error):
        """Should classify transient collaborator failures as retryable."""
        assert isinstance(error, RetryableError)
        assert error.recoverable is True

    @pytest.mark.parametrize("error", [
        MemoryCorruptionError("bad json", key="k"),
        ConfigurationError("bad config"),
        ValidationError("bad input"),
    ])
    def test_permanent_failures_are_fatal(self, error):
        """Should classify permanent failures as fatal."""
        assert isinstance(error, FatalError)
        assert error.recoverable is False

    def test_all_share_base(self):
        """Should derive everything from AgentMemError."""
        for cls in (RetryableError, FatalError, StoreError, SemanticStoreError, CompletionError):
            assert issubclass(cls, AgentMemError)


class TestDetails:
    """Tests for error payloads."""

    def test_store_error_details(self):
        """Should record the key."""
        error = StoreError("redis down", key="memory:short_term:a:s")

        assert error.code == "STORE_ERROR"
        assert error.details == {"key": "memory:short_term:a:s"}

    def test_semantic_store_error_details(self):
        """Should record the collection and status."""
        error = SemanticStoreError("failed", collection_id="memory_a", status_code=500)

        assert error.details == {"collection_id": "memory_a", "status_code": 500}

    def test_completion_error_without_status(self):
        """Should omit a missing status code."""
        assert CompletionError("timeout").details == {}

    def test_to_dict(self):
        """Should serialise type, code and details."""
        data = MemoryCorruptionError("bad json", key="k").to_dict()

        assert data["type"] == "MemoryCorruptionError"
        assert data["code"] == "MEMORY_CORRUPTION"
        assert data["message"] == "bad json"
        assert data["details"] == {"key": "k"}
        assert data["recoverable"] is False
        assert "timestamp" in data

    def test_str_is_message(self):
        """Should use the message as the string form."""
        assert str(CompletionError("router down")) == "router down"
