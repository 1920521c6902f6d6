"""
Anthropic Provider - Fallback chat adapter

The fallback runs on a different vendor than the primary so that one
provider's outage does not take down both paths.

Reference Documents:
- GUIDELINES pp. 215: Provider abstraction for model swapping
- GUIDELINES pp. 2229: Model API patterns

Format Differences (OpenAI -> Anthropic):
- System prompt: first message -> top-level `system=` parameter
- JSON mode: response_format -> instruction in the system prompt only
- Usage: total_tokens -> input_tokens + output_tokens
"""

from typing import Any, Optional, Sequence

import anthropic
from anthropic import AsyncAnthropic

from broker_ai.core.exceptions import (
    ProviderError,
    ProviderTimeoutError,
    TransientError,
    UnsupportedOperationError,
)
from broker_ai.models.domain import Completion, Embedding, HistoryMessage
from broker_ai.providers.base import LLMProvider, map_status_error

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


class AnthropicProvider(LLMProvider):
    """
    Anthropic Claude chat adapter.

    Anthropic has no embeddings endpoint; embed() raises
    UnsupportedOperationError.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
        timeout_seconds: float = 30.0,
        client: Optional[AsyncAnthropic] = None,
    ) -> None:
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Claude model identifier
            max_tokens: Completion token cap (required by the API)
            temperature: Sampling temperature, API default when None
            timeout_seconds: SDK request timeout
            client: Pre-built SDK client (tests)
        """
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds
        self._client = client or AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> Completion:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system_prompt,
            "messages": self._build_messages(history, message),
        }
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.AnthropicError as e:
            raise self._translate_error(e) from e

        return self._transform_completion(response)

    async def embed(self, text: str) -> Embedding:
        raise UnsupportedOperationError(
            "Anthropic does not provide an embeddings endpoint",
            provider=self.name,
        )

    async def aclose(self) -> None:
        await self._client.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_messages(
        self,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> list[dict[str, str]]:
        messages = [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "user", "content": message})
        return messages

    def _transform_completion(self, response: Any) -> Completion:
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        total = None
        if input_tokens is not None and output_tokens is not None:
            total = input_tokens + output_tokens

        return Completion(
            text=text,
            model=getattr(response, "model", None) or self._model,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=total,
        )

    def _translate_error(self, error: Exception) -> ProviderError:
        """Map an Anthropic SDK exception onto the broker error taxonomy."""
        if isinstance(error, anthropic.APITimeoutError):
            return ProviderTimeoutError(
                str(error),
                provider=self.name,
                timeout_seconds=self._timeout_seconds,
            )
        if isinstance(error, anthropic.APIConnectionError):
            return TransientError(str(error), provider=self.name)
        if isinstance(error, anthropic.APIStatusError):
            return map_status_error(self.name, error.status_code, str(error))
        return ProviderError(str(error), provider=self.name)
