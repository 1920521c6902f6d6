"""
Provider Base Interface - Model provider capability

This module defines the abstract capability every model provider adapter
implements. The orchestrator talks only to this interface, so the primary
and fallback vendors can be swapped at construction time.

Reference Documents:
- GUIDELINES pp. 793-795: Repository pattern and ABC patterns
- GUIDELINES p. 953: @abstractmethod decorator usage
- ANTI_PATTERN_ANALYSIS §1.1: Optional types with explicit None

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- LLMProvider / VisionProvider serve as the "ports"
- openai.py, anthropic.py and fake.py serve as "adapters"

Error contract:
    Adapters translate SDK exceptions into broker_ai.core.exceptions types
    with map_status_error(), so the retry classifier never sees vendor
    exception classes.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from broker_ai.core.exceptions import (
    AuthenticationError,
    ProviderError,
    ProviderTimeoutError,
    TransientError,
)
from broker_ai.models.domain import Completion, Embedding, HistoryMessage


class LLMProvider(ABC):
    """
    Abstract base class for model provider adapters.

    Methods:
        complete: Chat completion for a system prompt, history and message
        embed: Embedding vector for a piece of text

    Attributes:
        name: Provider identifier used in logs, metrics and breaker names
    """

    name: str = "base"

    @property
    @abstractmethod
    def model(self) -> str:
        """Chat model this adapter calls."""

    @property
    def embedding_model(self) -> Optional[str]:
        """Embedding model, None when the provider has no embeddings."""
        return None

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> Completion:
        """
        Generate a completion.

        Args:
            system_prompt: Fully built system instructions
            history: Prior turns, oldest first
            message: The new user message

        Returns:
            Completion with raw text and token usage

        Raises:
            AuthenticationError: Credentials rejected (not retried)
            TransientError: Rate limit, 5xx or connection failure
            ProviderTimeoutError: SDK-level timeout
            ProviderError: Any other provider failure
        """

    @abstractmethod
    async def embed(self, text: str) -> Embedding:
        """
        Generate an embedding vector.

        Raises:
            UnsupportedOperationError: Provider has no embedding endpoint
            ProviderError: As for complete()
        """

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None


class VisionProvider(LLMProvider):
    """Provider variant that can read a document image."""

    @property
    def vision_model(self) -> str:
        """Model used for analyze_document(); defaults to the chat model."""
        return self.model

    @abstractmethod
    async def analyze_document(
        self,
        system_prompt: str,
        instructions: str,
        document_ref: str,
    ) -> Completion:
        """
        Run a vision completion over one document.

        Args:
            system_prompt: Extraction instructions for the document type
            instructions: User-turn instruction text
            document_ref: URL (or data URL) of the document image

        Returns:
            Completion whose text is the JSON extraction
        """


# =============================================================================
# Error Mapping Helper
# =============================================================================


def map_status_error(
    provider: str,
    status_code: Optional[int],
    message: str,
    retry_after: Optional[float] = None,
) -> ProviderError:
    """
    Translate an HTTP status from a provider into the error taxonomy.

    401/403 -> AuthenticationError
    408     -> ProviderTimeoutError
    409/429/5xx/None -> TransientError
    other 4xx -> ProviderError (retried by the executor like any failure)
    """
    if status_code in (401, 403):
        return AuthenticationError(message, provider=provider, status_code=status_code)
    if status_code == 408:
        return ProviderTimeoutError(message, provider=provider, status_code=status_code)
    if status_code is None or status_code in (409, 429) or status_code >= 500:
        return TransientError(
            message,
            provider=provider,
            status_code=status_code,
            retry_after=retry_after,
        )
    return ProviderError(message, provider=provider, status_code=status_code)
