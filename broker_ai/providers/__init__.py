"""
Model provider adapters.

- base.py: LLMProvider / VisionProvider capability
- openai.py: primary chat, embeddings and vision (OpenAI)
- anthropic.py: fallback chat (Anthropic)
- fake.py: scripted test double
"""

from broker_ai.providers.base import LLMProvider, VisionProvider, map_status_error
from broker_ai.providers.fake import FakeProvider

__all__ = [
    "LLMProvider",
    "VisionProvider",
    "map_status_error",
    "FakeProvider",
]
