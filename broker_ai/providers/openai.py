"""
OpenAI Provider - Primary chat, embedding and vision adapter

Reference Documents:
- GUIDELINES pp. 2229: Model API patterns
- GUIDELINES pp. 2309: Circuit breaker and resilience patterns
- ANTI_PATTERN_ANALYSIS §3.4: Import exceptions from core, don't duplicate

Design Patterns:
- Ports and Adapters: OpenAIProvider implements LLMProvider
- Adapter Pattern: Transforms OpenAI SDK responses to Completion/Embedding

SDK-level retries are disabled (max_retries=0); RetryExecutor owns the
retry budget so that backoff and breaker accounting stay in one place.
"""

from typing import Any, Optional, Sequence

import openai
from openai import AsyncOpenAI

from broker_ai.core.exceptions import ProviderError, ProviderTimeoutError, TransientError
from broker_ai.models.domain import Completion, Embedding, HistoryMessage
from broker_ai.providers.base import LLMProvider, VisionProvider, map_status_error

DEFAULT_MODEL = "gpt-4o"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


def _retry_after(error: Any) -> Optional[float]:
    """Read a Retry-After header from an SDK status error, if present."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class OpenAIProvider(LLMProvider):
    """
    OpenAI chat and embeddings adapter.

    Requests JSON-object output so the reply can be decoded with the
    StructuredReply schema.

    Example:
        >>> provider = OpenAIProvider(api_key="sk-...")
        >>> completion = await provider.complete(system_prompt, [], "Hi")
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        embedding_model: str = DEFAULT_EMBEDDING_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: float = 30.0,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Chat model
            embedding_model: Embedding model
            temperature: Sampling temperature
            max_tokens: Completion token cap
            timeout_seconds: SDK request timeout
            base_url: Optional custom endpoint URL (Azure, proxies)
            client: Pre-built SDK client (tests)
        """
        self._model = model
        self._embedding_model = embedding_model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

        if client is not None:
            self._client = client
        else:
            client_kwargs: dict[str, Any] = {
                "api_key": api_key,
                "timeout": timeout_seconds,
                "max_retries": 0,
            }
            if base_url:
                client_kwargs["base_url"] = base_url
            self._client = AsyncOpenAI(**client_kwargs)

    @property
    def model(self) -> str:
        return self._model

    @property
    def embedding_model(self) -> Optional[str]:
        return self._embedding_model

    # =========================================================================
    # Capability Methods
    # =========================================================================

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> Completion:
        messages = self._build_messages(system_prompt, history, message)
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e

        return self._transform_completion(response)

    async def embed(self, text: str) -> Embedding:
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=text,
            )
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e

        if not response.data:
            raise ProviderError("Embedding response contained no data", provider=self.name)

        usage = getattr(response, "usage", None)
        return Embedding(
            vector=list(response.data[0].embedding),
            model=getattr(response, "model", None) or self._embedding_model,
            total_tokens=getattr(usage, "total_tokens", None),
        )

    async def aclose(self) -> None:
        await self._client.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_messages(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": message})
        return messages

    def _transform_completion(self, response: Any) -> Completion:
        if not response.choices:
            raise ProviderError("Completion response contained no choices", provider=self.name)

        usage = getattr(response, "usage", None)
        return Completion(
            text=response.choices[0].message.content or "",
            model=getattr(response, "model", None) or self._model,
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
            total_tokens=getattr(usage, "total_tokens", None),
        )

    def _translate_error(self, error: Exception) -> ProviderError:
        """Map an OpenAI SDK exception onto the broker error taxonomy."""
        if isinstance(error, openai.APITimeoutError):
            return ProviderTimeoutError(
                str(error),
                provider=self.name,
                timeout_seconds=self._timeout_seconds,
            )
        if isinstance(error, openai.APIConnectionError):
            return TransientError(str(error), provider=self.name)
        if isinstance(error, openai.APIStatusError):
            return map_status_error(
                self.name,
                error.status_code,
                str(error),
                retry_after=_retry_after(error),
            )
        return ProviderError(str(error), provider=self.name)


class OpenAIVisionProvider(OpenAIProvider, VisionProvider):
    """
    OpenAI adapter for document analysis.

    Sends the document as an image_url content part next to the
    instruction text and asks for a JSON object back.
    """

    def __init__(
        self,
        api_key: str,
        vision_model: str = DEFAULT_MODEL,
        max_tokens: int = 2000,
        timeout_seconds: float = 120.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            api_key=api_key,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
            **kwargs,
        )
        self._vision_model = vision_model

    @property
    def vision_model(self) -> str:
        return self._vision_model

    async def analyze_document(
        self,
        system_prompt: str,
        instructions: str,
        document_ref: str,
    ) -> Completion:
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": instructions},
                    {"type": "image_url", "image_url": {"url": document_ref}},
                ],
            },
        ]
        try:
            response = await self._client.chat.completions.create(
                model=self._vision_model,
                messages=messages,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise self._translate_error(e) from e

        return self._transform_completion(response)
