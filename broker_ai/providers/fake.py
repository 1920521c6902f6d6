"""
Fake Provider - Test Double Implementation

A FakeProvider implements the real provider capability without network
calls. Outcomes are scripted: each call pops the next entry from a queue
(a text reply or an exception to raise), falling back to a default reply.

Pattern: Test Doubles using duck typing (GUIDELINES pp. 157)
"Python's duck typing enables test doubles without complex mocking frameworks"

This is NOT mocking - it is a proper implementation of the interface, also
usable for local development without API keys.
"""

import asyncio
import json
from collections import deque
from typing import Iterable, Optional, Sequence, Union

from broker_ai.core.exceptions import UnsupportedOperationError
from broker_ai.models.domain import Completion, Embedding, HistoryMessage
from broker_ai.providers.base import VisionProvider

Outcome = Union[str, BaseException]

DEFAULT_REPLY = json.dumps(
    {
        "response": "Fake response for testing",
        "suggestedActions": [],
        "nextSteps": [],
        "confidence": 0.9,
    }
)


class FakeProvider(VisionProvider):
    """
    Deterministic provider for tests and local development.

    Attributes:
        complete_calls: Arguments of every complete() call, in order
        embed_calls: Texts passed to embed()
        document_calls: Document refs passed to analyze_document()

    Example:
        >>> provider = FakeProvider(outcomes=[TransientError("boom", "fake"), reply_json])
        >>> await provider.complete("sys", [], "hi")   # raises TransientError
        >>> await provider.complete("sys", [], "hi")   # returns reply_json
    """

    def __init__(
        self,
        name: str = "fake",
        model: str = "fake-model",
        outcomes: Optional[Iterable[Outcome]] = None,
        default_reply: str = DEFAULT_REPLY,
        tokens_per_call: Optional[int] = 100,
        embedding_dimensions: int = 8,
        supports_embeddings: bool = True,
        delay_seconds: float = 0.0,
    ) -> None:
        """
        Args:
            name: Provider identifier
            model: Model identifier reported in completions
            outcomes: Scripted results consumed one per call
            default_reply: Reply once the script is exhausted
            tokens_per_call: Token count reported per call, None for unknown
            embedding_dimensions: Length of fake embedding vectors
            supports_embeddings: When False, embed() raises UnsupportedOperationError
            delay_seconds: Simulated latency per call
        """
        self.name = name
        self._model = model
        self._outcomes: deque[Outcome] = deque(outcomes or [])
        self._default_reply = default_reply
        self._tokens_per_call = tokens_per_call
        self._embedding_dimensions = embedding_dimensions
        self._supports_embeddings = supports_embeddings
        self._delay_seconds = delay_seconds

        self.complete_calls: list[tuple[str, list[HistoryMessage], str]] = []
        self.embed_calls: list[str] = []
        self.document_calls: list[str] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def embedding_model(self) -> Optional[str]:
        return f"{self._model}-embedding" if self._supports_embeddings else None

    @property
    def call_count(self) -> int:
        """Total calls across all operations."""
        return len(self.complete_calls) + len(self.embed_calls) + len(self.document_calls)

    def queue(self, *outcomes: Outcome) -> None:
        """Append scripted outcomes."""
        self._outcomes.extend(outcomes)

    async def _next_text(self) -> str:
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if not self._outcomes:
            return self._default_reply
        outcome = self._outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def _completion(self, text: str) -> Completion:
        return Completion(text=text, model=self._model, total_tokens=self._tokens_per_call)

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[HistoryMessage],
        message: str,
    ) -> Completion:
        self.complete_calls.append((system_prompt, list(history), message))
        return self._completion(await self._next_text())

    async def embed(self, text: str) -> Embedding:
        self.embed_calls.append(text)
        if not self._supports_embeddings:
            raise UnsupportedOperationError("Fake provider has no embeddings", provider=self.name)
        await self._next_text()
        seed = sum(ord(ch) for ch in text)
        vector = [((seed * (i + 1)) % 997) / 997.0 for i in range(self._embedding_dimensions)]
        return Embedding(vector=vector, model=self.embedding_model, total_tokens=self._tokens_per_call)

    async def analyze_document(
        self,
        system_prompt: str,
        instructions: str,
        document_ref: str,
    ) -> Completion:
        self.document_calls.append(document_ref)
        return self._completion(await self._next_text())
