"""Language model providers used by consolidation."""

from agentmem.providers.completion_client import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    CompletionClient,
    TextCompleter,
)

__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "CompletionClient",
    "TextCompleter",
]
