"""
Knowledge Base Client

Client for the knowledge search service that augments chat prompts.
The orchestrator treats every failure here as "no augmentation".

Expected service contract:
    POST /search {"query": str, "limit": int}
    -> {"results": [{"title": str, "content": str, "score": float, ...}]}

"filename" is accepted in place of "title", and "excerpt" in place of
"content", to cover both document-store and chunk-store backends.

Pattern: Client adapter for microservice communication
"""

from typing import Any, Optional, Protocol

import httpx

from broker_ai.clients.http import create_http_client
from broker_ai.core.exceptions import KnowledgeBaseError
from broker_ai.models.domain import KnowledgeSnippet


class KnowledgeSearch(Protocol):
    """Capability consumed by the orchestrator."""

    async def search(self, query: str, top_k: int) -> list[KnowledgeSnippet]:
        ...


class KnowledgeBaseClient:
    """
    HTTP client for the knowledge search service.

    Example:
        >>> async with KnowledgeBaseClient(base_url="http://localhost:8081") as kb:
        ...     snippets = await kb.search("SBA 7(a) requirements", top_k=3)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        """
        Args:
            base_url: Base URL of the search service
            http_client: Pre-configured HTTP client (tests)
            timeout_seconds: Request timeout in seconds
        """
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            self._client = create_http_client(
                base_url=base_url or "http://localhost:8081",
                timeout_seconds=timeout_seconds,
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close the HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "KnowledgeBaseClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def search(self, query: str, top_k: int = 3) -> list[KnowledgeSnippet]:
        """
        Search for snippets relevant to a query.

        Args:
            query: Search text (the user's message)
            top_k: Maximum number of results

        Returns:
            Snippets in relevance order; results without text are dropped

        Raises:
            KnowledgeBaseError: If the service is unavailable or returns an error
        """
        try:
            response = await self._client.post("/search", json={"query": query, "limit": top_k})
            response.raise_for_status()
            data = response.json()

        except httpx.ConnectError as e:
            raise KnowledgeBaseError(f"Knowledge service unavailable: {e}") from e
        except httpx.TimeoutException as e:
            raise KnowledgeBaseError(f"Knowledge search timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise KnowledgeBaseError(
                f"Knowledge search error: {e}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise KnowledgeBaseError(f"Knowledge search failed: {e}") from e

        snippets: list[KnowledgeSnippet] = []
        for item in data.get("results", [])[:top_k]:
            snippet = self._to_snippet(item)
            if snippet is not None:
                snippets.append(snippet)
        return snippets

    @staticmethod
    def _to_snippet(item: dict[str, Any]) -> Optional[KnowledgeSnippet]:
        text = item.get("excerpt") or item.get("content")
        if not text:
            return None
        metadata = item.get("metadata") or {}
        title = item.get("title") or item.get("filename") or metadata.get("source") or "Untitled"
        return KnowledgeSnippet(title=str(title), excerpt=str(text))
