"""
Tests for PromptBuilder.

Test Categories:
- Section order and presence per CallContext
- Knowledge block rendering (limit, truncation)
- Determinism
- Document prompts
"""

import pytest


@pytest.fixture
def builder():
    from broker_ai.prompts.builder import PromptBuilder

    return PromptBuilder()


def _snippet(title: str, excerpt: str):
    from broker_ai.models.domain import KnowledgeSnippet

    return KnowledgeSnippet(title=title, excerpt=excerpt)


class TestChatPrompt:
    """Tests for build()."""

    def test_default_context_is_base_only(self, builder) -> None:
        from broker_ai.models.domain import CallContext

        assert builder.build(CallContext()) == builder.base_prompt()

    def test_base_contains_json_contract(self, builder) -> None:
        from broker_ai.prompts.builder import JSON_CONTRACT

        assert JSON_CONTRACT in builder.base_prompt()
        assert '"suggestedActions"' in builder.base_prompt()

    def test_lending_division_addendum(self, builder) -> None:
        from broker_ai.models.domain import CallContext, Division

        prompt = builder.build(CallContext(division=Division.LENDING))

        assert "Current Context: User is in the LENDING division." in prompt
        assert "INVESTMENT" not in prompt

    @pytest.mark.parametrize(
        ("division", "context_line", "focus"),
        [
            ("lending", "User is in the LENDING division.", "loan products, credit requirements"),
            ("investment", "User is in the INVESTMENT division.", "accreditation status, minimum investments"),
            ("real_estate", "User is in the REAL ESTATE division.", "showing scheduling, offers"),
            ("none", None, None),
        ],
    )
    def test_division_branches(self, builder, division: str, context_line, focus) -> None:
        from broker_ai.models.domain import CallContext, Division

        prompt = builder.build(CallContext(division=Division(division)))

        if context_line is None:
            assert prompt == builder.base_prompt()
            assert "Current Context:" not in prompt
        else:
            assert f"Current Context: {context_line}" in prompt
            assert focus in prompt
            assert prompt.count("Current Context:") == 1

    def test_sections_in_order(self, builder) -> None:
        from broker_ai.models.domain import CallContext, Division
        from broker_ai.prompts.builder import ADMIN_ADDENDUM, KNOWLEDGE_HEADER

        prompt = builder.build(
            CallContext(division=Division.REAL_ESTATE, stage="offer", is_admin=True),
            [_snippet("Closing checklist", "Title insurance, appraisal.")],
        )

        positions = [
            prompt.index("REAL ESTATE division"),
            prompt.index("Conversation stage: offer"),
            prompt.index(ADMIN_ADDENDUM),
            prompt.index(KNOWLEDGE_HEADER),
        ]
        assert positions == sorted(positions)
        assert prompt.endswith("- Closing checklist: Title insurance, appraisal.")

    def test_deterministic(self, builder) -> None:
        from broker_ai.models.domain import CallContext, Division

        ctx = CallContext(division=Division.INVESTMENT, is_admin=True)
        snippets = [_snippet("Accreditation", "Income over $200k.")]

        assert builder.build(ctx, snippets) == builder.build(ctx, snippets)

    def test_custom_assistant_name(self) -> None:
        from broker_ai.prompts.builder import PromptBuilder

        assert PromptBuilder(assistant_name="Ava").base_prompt().startswith("You are Ava,")


class TestKnowledgeBlock:
    """Tests for render_knowledge()."""

    def test_empty_snippets_render_nothing(self, builder) -> None:
        assert builder.render_knowledge([]) == ""

    def test_only_first_three_snippets(self, builder) -> None:
        snippets = [_snippet(f"Doc {n}", f"text {n}") for n in range(5)]

        block = builder.render_knowledge(snippets)

        assert "Doc 2" in block
        assert "Doc 3" not in block
        assert len(block.splitlines()) == 4

    def test_long_excerpt_truncated(self, builder) -> None:
        block = builder.render_knowledge([_snippet("Long", "x" * 400)])

        line = block.splitlines()[1]
        assert line == "- Long: " + "x" * 300 + "..."

    def test_whitespace_collapsed(self, builder) -> None:
        block = builder.render_knowledge([_snippet("Spaced", "a\n\n  b\tc")])

        assert block.splitlines()[1] == "- Spaced: a b c"

    def test_invalid_limits_rejected(self) -> None:
        from broker_ai.prompts.builder import PromptBuilder

        with pytest.raises(ValueError):
            PromptBuilder(max_excerpt_chars=0)


class TestDocumentPrompt:
    """Tests for document-analysis prompts."""

    def test_prompt_names_type_and_fields(self, builder) -> None:
        from broker_ai.models.domain import DocumentType

        prompt = builder.build_document_prompt(DocumentType.PAY_STUB)

        assert "Document type: pay_stub" in prompt
        assert "gross pay" in prompt
        assert '"warnings"' in prompt

    def test_instructions_use_readable_label(self, builder) -> None:
        from broker_ai.models.domain import DocumentType

        assert builder.document_instructions(DocumentType.BANK_STATEMENT) == (
            "Analyze this bank statement and extract all relevant information."
        )

    @pytest.mark.parametrize("doc_type", ["bank_statement", "tax_return", "pay_stub", "id", "other"])
    def test_every_type_has_hints(self, builder, doc_type: str) -> None:
        from broker_ai.models.domain import DocumentType

        assert "Fields of interest:" in builder.build_document_prompt(DocumentType(doc_type))
