"""Request, result and structured-output models."""

from broker_ai.models.domain import (
    CallContext,
    ChatRequest,
    ChatResult,
    Completion,
    Division,
    DocumentAnalysis,
    DocumentExtractionReply,
    DocumentType,
    Embedding,
    HistoryMessage,
    KnowledgeSnippet,
    StructuredReply,
    parse_structured,
)

__all__ = [
    "CallContext",
    "ChatRequest",
    "ChatResult",
    "Completion",
    "Division",
    "DocumentAnalysis",
    "DocumentExtractionReply",
    "DocumentType",
    "Embedding",
    "HistoryMessage",
    "KnowledgeSnippet",
    "StructuredReply",
    "parse_structured",
]
