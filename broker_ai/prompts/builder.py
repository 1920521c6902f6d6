"""
Prompt Builder

Assembles system instructions from the caller's CallContext and optional
knowledge-base snippets. Pure and deterministic: the same inputs always
produce the same prompt, and nothing here performs I/O. Snippet retrieval
happens in the orchestrator.

Prompt layout:
    1. base instructions + JSON reply contract
    2. division addendum (lending, investment, real estate; none adds nothing)
    3. stage line, when a stage is set
    4. admin addendum, when is_admin
    5. RELEVANT KNOWLEDGE block, when snippets are present
"""

from typing import Sequence

from broker_ai.models.domain import CallContext, Division, DocumentType, KnowledgeSnippet

DEFAULT_ASSISTANT_NAME = "Broker AI"

JSON_CONTRACT = """Always respond in JSON format with this structure:
{
  "response": "Your helpful message to the user",
  "suggestedActions": ["action1", "action2"],
  "nextSteps": ["step1", "step2"],
  "confidence": 0.95
}"""

DIVISION_ADDENDA: dict[Division, str] = {
    Division.LENDING: (
        "Current Context: User is in the LENDING division.\n"
        "Focus on: loan products, credit requirements, documentation needs, approval timeline."
    ),
    Division.INVESTMENT: (
        "Current Context: User is in the INVESTMENT division.\n"
        "Focus on: investment opportunities, accreditation status, minimum investments, returns."
    ),
    Division.REAL_ESTATE: (
        "Current Context: User is in the REAL ESTATE division.\n"
        "Focus on: property search, showing scheduling, offers, closing process."
    ),
    Division.NONE: "",
}

ADMIN_ADDENDUM = "ADMIN MODE: Provide detailed pipeline insights and management advice."

KNOWLEDGE_HEADER = "RELEVANT KNOWLEDGE:"

DOCUMENT_HINTS: dict[DocumentType, str] = {
    DocumentType.BANK_STATEMENT: (
        "account holder, institution, statement period, opening balance, "
        "closing balance, total deposits, total withdrawals, NSF events"
    ),
    DocumentType.TAX_RETURN: (
        "taxpayer names, tax year, filing status, adjusted gross income, "
        "total income, business income, taxable income"
    ),
    DocumentType.PAY_STUB: (
        "employee name, employer, pay period, pay date, gross pay, net pay, "
        "year-to-date gross, deductions"
    ),
    DocumentType.ID: (
        "full name, date of birth, document number, issuing authority, "
        "issue date, expiration date, address"
    ),
    DocumentType.OTHER: "any names, dates, amounts, account numbers and identifiers",
}


class PromptBuilder:
    """
    Builds chat and document-analysis system prompts.

    Example:
        >>> builder = PromptBuilder()
        >>> prompt = builder.build(CallContext(division=Division.LENDING), snippets)
    """

    def __init__(
        self,
        assistant_name: str = DEFAULT_ASSISTANT_NAME,
        max_snippets: int = 3,
        max_excerpt_chars: int = 300,
    ) -> None:
        if max_snippets < 0:
            raise ValueError("max_snippets must be >= 0")
        if max_excerpt_chars < 1:
            raise ValueError("max_excerpt_chars must be >= 1")
        self._assistant_name = assistant_name
        self._max_snippets = max_snippets
        self._max_excerpt_chars = max_excerpt_chars

    @property
    def max_snippets(self) -> int:
        return self._max_snippets

    def base_prompt(self) -> str:
        return (
            f"You are {self._assistant_name}, the assistant for a brokerage covering "
            "commercial lending, real estate financing and investments.\n\n"
            "You guide clients through financing options, required documents and next "
            "steps. Be accurate and concise, and never promise approval, rates or returns.\n\n"
            f"{JSON_CONTRACT}"
        )

    def build(
        self,
        context: CallContext,
        knowledge_snippets: Sequence[KnowledgeSnippet] = (),
    ) -> str:
        """
        Build the chat system prompt.

        Args:
            context: Division, stage and admin flag for this call
            knowledge_snippets: Retrieved snippets; only the first
                max_snippets are rendered

        Returns:
            The complete system prompt
        """
        sections = [self.base_prompt()]

        addendum = DIVISION_ADDENDA[context.division]
        if addendum:
            sections.append(addendum)

        if context.stage:
            sections.append(f"Conversation stage: {context.stage}")

        if context.is_admin:
            sections.append(ADMIN_ADDENDUM)

        knowledge = self.render_knowledge(knowledge_snippets)
        if knowledge:
            sections.append(knowledge)

        return "\n\n".join(sections)

    def render_knowledge(self, snippets: Sequence[KnowledgeSnippet]) -> str:
        """Render the knowledge block; empty string when there is nothing to add."""
        selected = list(snippets)[: self._max_snippets]
        if not selected:
            return ""

        lines = [KNOWLEDGE_HEADER]
        for snippet in selected:
            lines.append(f"- {snippet.title}: {self._truncate(snippet.excerpt)}")
        return "\n".join(lines)

    def _truncate(self, text: str) -> str:
        flat = " ".join(text.split())
        if len(flat) <= self._max_excerpt_chars:
            return flat
        return flat[: self._max_excerpt_chars] + "..."

    # =========================================================================
    # Document Analysis Prompts
    # =========================================================================

    def build_document_prompt(self, document_type: DocumentType) -> str:
        """System prompt for extracting fields from one document type."""
        return (
            "You are a document analysis expert. Extract structured data from financial "
            "documents.\n\n"
            f"Document type: {document_type.value}\n"
            f"Fields of interest: {DOCUMENT_HINTS[document_type]}\n\n"
            "Return a JSON object with this structure:\n"
            "{\n"
            '  "data": {"field_name": "value"},\n'
            '  "confidence": 0.8,\n'
            '  "warnings": ["anything unreadable, missing or inconsistent"]\n'
            "}"
        )

    def document_instructions(self, document_type: DocumentType) -> str:
        """User-turn instruction sent alongside the document image."""
        label = document_type.value.replace("_", " ")
        return f"Analyze this {label} and extract all relevant information."
