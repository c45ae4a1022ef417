"""HTTP client for a DeepLake-style semantic store service.

Collections map to datasets under ``/api/v1/datasets/{collection_id}``. A 404
from any dataset endpoint means the collection has not been created yet and
is reported as an empty result.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import pydantic
from pydantic import BaseModel, Field

from agentmem.config import SemanticStoreConfig
from agentmem.errors import SemanticStoreError
from agentmem.logging import get_logger
from agentmem.persistence.interface import SemanticRecord, SemanticStore

logger = get_logger(__name__, component="semantic_client")

ResponseT = TypeVar("ResponseT", bound=BaseModel)


# Request/Response Models


class SearchRequest(BaseModel):
    """Text search request."""

    query_text: str
    top_k: int
    filters: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """Text search response."""

    results: List[SemanticRecord] = Field(default_factory=list)
    total_found: int = 0


class VectorInput(BaseModel):
    """A record to embed and insert."""

    id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class InsertRequest(BaseModel):
    """Batch insert request."""

    vectors: List[VectorInput]


class CountResponse(BaseModel):
    count: int = 0


class DeleteRequest(BaseModel):
    ids: List[str]


class PruneRequest(BaseModel):
    count: int
    order_by: str = "accessed_at"


class DeleteResponse(BaseModel):
    deleted: int = 0


class HTTPSemanticStore(SemanticStore):
    """Async semantic store client over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_key: Optional[str] = None,
        timeout_ms: int = 30000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Semantic store service URL.
            api_key: Optional bearer token.
            timeout_ms: Request timeout in milliseconds.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout_ms / 1000)
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: SemanticStoreConfig) -> "HTTPSemanticStore":
        return cls(base_url=config.base_url, api_key=config.api_key, timeout_ms=config.timeout_ms)

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

    @staticmethod
    def _dataset_path(collection_id: str, suffix: str) -> str:
        return f"/api/v1/datasets/{collection_id}/{suffix}"

    async def _send(
        self,
        method: str,
        collection_id: str,
        suffix: str,
        payload: Optional[BaseModel] = None,
    ) -> Optional[httpx.Response]:
        """Send a dataset request.

        Returns:
            The response, or None when the collection does not exist.

        Raises:
            SemanticStoreError: On transport failures and non-404 error statuses.
        """
        client = await self._get_client()
        path = self._dataset_path(collection_id, suffix)

        try:
            if method == "GET":
                response = await client.get(path)
            else:
                response = await client.post(path, json=payload.model_dump() if payload else None)
        except httpx.HTTPError as e:
            logger.error("semantic_store_request_failed", path=path, error=str(e))
            raise SemanticStoreError(
                f"Semantic store request failed: {e}", collection_id=collection_id
            ) from e

        if response.status_code == 404:
            logger.debug("semantic_collection_not_found", collection_id=collection_id)
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "semantic_store_error_status",
                path=path,
                status_code=response.status_code,
            )
            raise SemanticStoreError(
                f"Semantic store returned status {response.status_code}",
                collection_id=collection_id,
                status_code=response.status_code,
            ) from e

        return response

    @staticmethod
    def _decode(response: httpx.Response, model: Type[ResponseT], collection_id: str) -> ResponseT:
        """Parse a response body into ``model``.

        Raises:
            SemanticStoreError: If the body is not JSON or has the wrong shape.
        """
        try:
            return model(**response.json())
        except (ValueError, TypeError, pydantic.ValidationError) as e:
            logger.error(
                "semantic_store_bad_response",
                collection_id=collection_id,
                expected=model.__name__,
                error=str(e),
            )
            raise SemanticStoreError(
                f"Semantic store returned an unreadable {model.__name__}",
                collection_id=collection_id,
                status_code=response.status_code,
            ) from e

    async def search(
        self,
        collection_id: str,
        query_text: str,
        top_k: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SemanticRecord]:
        request = SearchRequest(query_text=query_text, top_k=top_k, filters=filters or {})
        response = await self._send("POST", collection_id, "search/text", request)
        if response is None:
            return []
        return self._decode(response, SearchResponse, collection_id).results

    async def insert(
        self,
        collection_id: str,
        record_id: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        request = InsertRequest(vectors=[VectorInput(id=record_id, content=content, metadata=metadata or {})])
        response = await self._send("POST", collection_id, "vectors", request)
        if response is None:
            # Inserting is what creates a collection, so a 404 here is a real failure
            raise SemanticStoreError(
                "Semantic store rejected insert with 404",
                collection_id=collection_id,
                status_code=404,
            )

    async def count(self, collection_id: str) -> int:
        response = await self._send("GET", collection_id, "count")
        if response is None:
            return 0
        return self._decode(response, CountResponse, collection_id).count

    async def delete(self, collection_id: str, record_ids: List[str]) -> int:
        if not record_ids:
            return 0
        response = await self._send("POST", collection_id, "vectors/delete", DeleteRequest(ids=record_ids))
        if response is None:
            return 0
        return self._decode(response, DeleteResponse, collection_id).deleted

    async def delete_least_accessed(self, collection_id: str, n: int) -> int:
        if n <= 0:
            return 0
        response = await self._send("POST", collection_id, "vectors/prune", PruneRequest(count=n))
        if response is None:
            return 0
        return self._decode(response, DeleteResponse, collection_id).deleted
