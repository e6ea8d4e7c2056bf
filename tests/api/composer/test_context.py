"""Tests for conversation and evidence formatting."""

from langchain_core.messages import HumanMessage

from api.composer.context import (
    NO_EVIDENCE_CONTEXT,
    build_contextual_query,
    build_enriched_query,
    build_evidence_context,
    format_conversation_history,
    history_with_summary,
)
from tests.factories import make_conversation, make_document


class TestConversationHistory:
    def test_excludes_current_message(self):
        messages = make_conversation(
            "I swim for USA Swimming.",
            "Thanks, how can I help?",
            "Can I appeal my non-selection?",
        )

        current, history = build_contextual_query(messages)

        assert current == "Can I appeal my non-selection?"
        assert history == "User: I swim for USA Swimming.\nAssistant: Thanks, how can I help?"

    def test_single_message_has_no_history(self):
        assert format_conversation_history([HumanMessage(content="hi")]) == ""

    def test_keeps_last_turns_only(self):
        messages = make_conversation(*[f"message {i}" for i in range(13)])

        lines = format_conversation_history(messages, max_turns=2).splitlines()

        assert len(lines) == 4
        assert lines[0] == "User: message 8"
        assert lines[-1] == "Assistant: message 11"

    def test_long_messages_truncated(self):
        messages = make_conversation("x" * 600, "ok", "question")

        first_line = format_conversation_history(messages).splitlines()[0]

        assert first_line.endswith("...")
        assert len(first_line) == len("User: ") + 500 + 3

    def test_empty_messages(self):
        assert build_contextual_query([]) == ("", "")


class TestEnrichedQuery:
    def test_no_history_returns_message(self):
        assert build_enriched_query([HumanMessage(content="What is a TUE?")]) == "What is a TUE?"

    def test_adds_recent_context_without_role_prefixes(self):
        messages = make_conversation("I compete in judo.", "Got it.", "What are the selection criteria?")

        query = build_enriched_query(messages)

        assert query.startswith("what are the selection criteria?")
        assert "judo" in query
        assert "user:" not in query
        assert "assistant:" not in query


class TestEvidenceContext:
    def test_documents_and_web_results(self):
        doc = make_document(
            "Appeals must be filed within 48 hours.",
            score=0.0164,
            document_title="Selection Procedures",
            section_title="Appeals",
            ngb_id="usa-swimming",
            source_url="https://example.org/sel",
        )

        context = build_evidence_context([doc], ["Title: Ombuds\nURL: https://www.usathlete.org\nContent: Free advice"])

        assert "[Document 1]" in context
        assert "Title: Selection Procedures" in context
        assert "Organization: usa-swimming" in context
        assert "Relevance Score: 0.0164" in context
        assert "[Web Search Results]" in context
        assert "[Web Result 1]" in context

    def test_no_evidence(self):
        assert build_evidence_context([], []) == NO_EVIDENCE_CONTEXT


class TestHistoryWithSummary:
    def test_prefixes_summary(self):
        combined = history_with_summary("User: hi", "Athlete is a fencer.")

        assert combined == "Summary of earlier conversation:\nAthlete is a fencer.\n\nUser: hi"

    def test_summary_only(self):
        assert history_with_summary("", "Athlete is a fencer.") == "Summary of earlier conversation:\nAthlete is a fencer."

    def test_no_summary(self):
        assert history_with_summary("User: hi", None) == "User: hi"
