"""Text completion client for an OpenAI-compatible router.

Consolidation only needs one capability from a language model: turn a short
list of chat messages into text. TextCompleter names that capability and
CompletionClient provides it over HTTP. Retry and fallback policy belong to
the router, so each call is a single attempt.
"""

from typing import List, Literal, Optional, Protocol

import httpx
import pydantic
from pydantic import BaseModel, Field

from agentmem.config import RouterConfig
from agentmem.errors import CompletionError
from agentmem.logging import get_logger

logger = get_logger(__name__, component="completion_client")


# Request/Response Models


class ChatMessage(BaseModel):
    """Chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request for chat completion."""

    model: Optional[str] = None
    messages: List[ChatMessage]
    max_tokens: Optional[int] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class ChatChoice(BaseModel):
    """A completion choice."""

    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Response from chat completion."""

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = Field(default_factory=list)


class TextCompleter(Protocol):
    """Anything that can complete a chat prompt to text."""

    async def complete(
        self,
        messages: List[ChatMessage],
        max_tokens: int,
        temperature: float,
    ) -> str:
        ...


class CompletionClient:
    """Async client for ``POST /v1/chat/completions``."""

    def __init__(
        self,
        base_url: str = "http://localhost:8081",
        api_key: Optional[str] = None,
        timeout_ms: int = 30000,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize completion client.

        Args:
            base_url: Router base URL.
            api_key: Optional bearer token.
            timeout_ms: Request timeout in milliseconds.
            model: Model name to request. None lets the router choose.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout_ms / 1000)
        self.model = model
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: RouterConfig) -> "CompletionClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_ms=config.timeout_ms,
            model=config.model,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def complete(
        self,
        messages: List[ChatMessage],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Create a chat completion and return the first choice's text.

        Args:
            messages: Conversation to complete.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.

        Returns:
            Content of the first choice.

        Raises:
            CompletionError: On network errors, error statuses, or a response
                that is unreadable or has no choices.
        """
        client = await self._get_client()
        request = ChatCompletionRequest(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )

        try:
            response = await client.post(
                "/v1/chat/completions",
                json=request.model_dump(exclude_none=True),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error("completion_request_rejected", status_code=status_code)
            raise CompletionError(
                f"Completion request failed with status {status_code}", status_code=status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error("completion_request_failed", error=str(e))
            raise CompletionError(f"Completion request failed: {e}") from e

        try:
            result = ChatCompletionResponse(**response.json())
        except (ValueError, TypeError, pydantic.ValidationError) as e:
            logger.error("completion_response_unreadable", error=str(e))
            raise CompletionError(
                "Completion response is not a valid chat completion", status_code=response.status_code
            ) from e

        if not result.choices:
            raise CompletionError("Completion response contained no choices")

        return result.choices[0].message.content
