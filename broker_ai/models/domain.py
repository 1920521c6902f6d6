"""
Domain Models - Broker AI request/response shapes

This module contains the request-scoped value objects passed into the
orchestrator, the results it hands back, and the strict schemas used to
decode structured model output.

Reference Documents:
- GUIDELINES pp. 276: Domain modeling with Pydantic or @dataclass(frozen=True)
- ANTI_PATTERN_ANALYSIS §1.1: Optional types with explicit None
- ANTI_PATTERN_ANALYSIS §1.5: Mutable default arguments

Pattern: Domain models as value objects (Percival & Gregory pp. 59-65)
Pattern: Parse, don't validate - provider output is decoded through a
strict schema and rejected with ResponseParseError on any mismatch.
"""

import json
import re
from enum import Enum
from typing import Any, Literal, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from broker_ai.core.exceptions import ResponseParseError

ReplyT = TypeVar("ReplyT", bound=BaseModel)


# =============================================================================
# Call Context
# =============================================================================


class Division(str, Enum):
    """Business division a conversation belongs to."""

    LENDING = "lending"
    INVESTMENT = "investment"
    REAL_ESTATE = "real_estate"
    NONE = "none"


class CallContext(BaseModel):
    """
    Caller-supplied context that selects prompt text.

    Immutable per request; carries no persisted identity.

    Attributes:
        division: Business division, NONE for general questions.
        stage: Optional conversation/funnel stage (e.g. "pre_approval").
        is_admin: Whether the caller is staff using the admin console.
    """

    division: Division = Division.NONE
    stage: Optional[str] = None
    is_admin: bool = False

    model_config = {"frozen": True}


class HistoryMessage(BaseModel):
    """A single prior turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str

    model_config = {"frozen": True}


class ChatRequest(BaseModel):
    """
    A chat call into the orchestrator.

    Attributes:
        message: The user's new message.
        history: Prior turns, oldest first.
        context: Prompt-selection context.
    """

    message: str = Field(..., min_length=1)
    history: list[HistoryMessage] = Field(default_factory=list)
    context: CallContext = Field(default_factory=CallContext)


class ChatResult(BaseModel):
    """
    Result returned by Orchestrator.chat().

    Attributes:
        response_text: Reply shown to the end user.
        suggested_actions: Machine-readable action hints (e.g. "call_agent").
        next_steps: Ordered human-readable next steps.
        confidence: Model-reported confidence in [0, 1]; 0 when degraded.
        provider: Which path produced the result: primary, fallback or degraded.
        degraded: True when no provider could answer.
    """

    response_text: str
    suggested_actions: frozenset[str] = Field(default_factory=frozenset)
    next_steps: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    provider: Literal["primary", "fallback", "degraded"] = "primary"
    degraded: bool = False


# =============================================================================
# Knowledge Augmentation
# =============================================================================


class KnowledgeSnippet(BaseModel):
    """One knowledge-base search hit rendered into the system prompt."""

    title: str
    excerpt: str

    model_config = {"frozen": True}


# =============================================================================
# Provider Results
# =============================================================================


class Completion(BaseModel):
    """
    Raw text completion returned by a provider.

    Token counts are None when the provider did not report usage.
    """

    text: str
    model: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class Embedding(BaseModel):
    """Embedding vector returned by a provider."""

    vector: list[float]
    model: str
    total_tokens: Optional[int] = None


# =============================================================================
# Document Analysis
# =============================================================================


class DocumentType(str, Enum):
    """Document type hint passed to analyze_document()."""

    BANK_STATEMENT = "bank_statement"
    TAX_RETURN = "tax_return"
    PAY_STUB = "pay_stub"
    ID = "id"
    OTHER = "other"


class DocumentAnalysis(BaseModel):
    """
    Fields extracted from a client document.

    Attributes:
        extracted_fields: Field name to extracted value.
        confidence: Extraction confidence in [0, 1].
        warnings: Problems noticed while reading (illegible, cut off, ...).
    """

    extracted_fields: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Structured Output Schemas
# =============================================================================


class StructuredReply(BaseModel):
    """
    Strict shape of the JSON a chat model must return.

    Unknown keys are ignored; missing or mistyped required keys are errors.
    """

    response: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("response", "responseText", "response_text"),
    )
    suggested_actions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("suggestedActions", "suggested_actions"),
    )
    next_steps: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("nextSteps", "next_steps"),
    )
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = {"extra": "ignore"}

    def to_result(self, provider: Literal["primary", "fallback"]) -> ChatResult:
        """Convert into the public ChatResult."""
        return ChatResult(
            response_text=self.response,
            suggested_actions=frozenset(self.suggested_actions),
            next_steps=list(self.next_steps),
            confidence=self.confidence,
            provider=provider,
        )


class DocumentExtractionReply(BaseModel):
    """Strict shape of the JSON a vision model must return for a document."""

    data: dict[str, Any]
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator("warnings", mode="before")
    @classmethod
    def coerce_null_warnings(cls, v: Any) -> Any:
        """Models sometimes send null instead of an empty list."""
        return [] if v is None else v

    def to_analysis(self) -> DocumentAnalysis:
        """Convert into the public DocumentAnalysis."""
        return DocumentAnalysis(
            extracted_fields=dict(self.data),
            confidence=self.confidence,
            warnings=list(self.warnings),
        )


_FENCE_PATTERN = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def parse_structured(raw_text: str, schema: type[ReplyT]) -> ReplyT:
    """
    Decode model output into a strict schema.

    Accepts a bare JSON object or one wrapped in a Markdown code fence.

    Args:
        raw_text: Text returned by the provider.
        schema: Pydantic model describing the expected shape.

    Returns:
        Validated schema instance.

    Raises:
        ResponseParseError: On empty output, invalid JSON, a non-object
            payload or any schema violation.
    """
    if raw_text is None or not raw_text.strip():
        raise ResponseParseError("Model returned empty output", raw_text=raw_text or "")

    text = raw_text
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Invalid JSON from model: {e}", raw_text=raw_text) from e

    if not isinstance(payload, dict):
        raise ResponseParseError(
            f"Expected JSON object, got {type(payload).__name__}",
            raw_text=raw_text,
        )

    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        raise ResponseParseError(
            f"Model output does not match {schema.__name__}: {e.error_count()} error(s)",
            raw_text=raw_text,
        ) from e
