"""System prompt construction."""

from broker_ai.prompts.builder import PromptBuilder

__all__ = ["PromptBuilder"]
