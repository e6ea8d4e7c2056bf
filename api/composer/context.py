"""Conversation and evidence formatting shared by prompt builders and nodes."""

from __future__ import annotations

import json
import re
from typing import List, Optional, Sequence, Tuple

from langchain_core.messages import BaseMessage

from api.schemas.agent_state import RetrievedDocument

MAX_HISTORY_TURNS = 5
MAX_MESSAGE_CHARS = 500

# Retrieval only needs a hint of prior turns
RETRIEVAL_HISTORY_TURNS = 2
MAX_QUERY_CONTEXT_CHARS = 200

NO_EVIDENCE_CONTEXT = "No documents or search results were found for this query."

_ROLE_PREFIX_RE = re.compile(r"^(User|Assistant):\s*", re.IGNORECASE | re.MULTILINE)
_WHITESPACE_RE = re.compile(r"\s+")


def message_text(message: BaseMessage) -> str:
    content = message.content
    return content if isinstance(content, str) else json.dumps(content)


def _truncate(text: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def format_conversation_history(
    messages: Sequence[BaseMessage],
    max_turns: int = MAX_HISTORY_TURNS,
) -> str:
    """Format prior turns as ``User: ...`` / ``Assistant: ...`` lines.

    The current (last) message is excluded; a turn is one user message
    plus one assistant reply, so at most ``2 * max_turns`` lines are kept.
    """
    if len(messages) <= 1:
        return ""

    prior = list(messages[:-1])[-(max_turns * 2):]
    lines = []
    for message in prior:
        role = "User" if message.type == "human" else "Assistant"
        lines.append(f"{role}: {_truncate(message_text(message))}")
    return "\n".join(lines)


def build_contextual_query(
    messages: Sequence[BaseMessage],
    max_turns: int = MAX_HISTORY_TURNS,
) -> Tuple[str, str]:
    """Return ``(current_message, conversation_history)``."""
    if not messages:
        return "", ""
    return message_text(messages[-1]), format_conversation_history(messages, max_turns)


def build_enriched_query(messages: Sequence[BaseMessage]) -> str:
    """Search query for the current message, enriched with recent context.

    Adds at most ``MAX_QUERY_CONTEXT_CHARS`` of the last two turns with role
    prefixes stripped; returns the bare message when there is no history.
    """
    current, history = build_contextual_query(messages, max_turns=RETRIEVAL_HISTORY_TURNS)
    if not current:
        return ""

    context = _ROLE_PREFIX_RE.sub(" ", history[:MAX_QUERY_CONTEXT_CHARS])
    context = _WHITESPACE_RE.sub(" ", context).strip()
    if not context:
        return current
    return f"{current.lower()} {context.lower()}"


def format_document(doc: RetrievedDocument, index: int) -> str:
    meta = doc.metadata
    lines = [f"[Document {index + 1}]"]
    if meta.document_title:
        lines.append(f"Title: {meta.document_title}")
    if meta.section_title:
        lines.append(f"Section: {meta.section_title}")
    if meta.document_type:
        lines.append(f"Type: {meta.document_type}")
    if meta.ngb_id:
        lines.append(f"Organization: {meta.ngb_id}")
    if meta.effective_date:
        lines.append(f"Effective Date: {meta.effective_date}")
    if meta.authority_level:
        lines.append(f"Authority Level: {meta.authority_level}")
    if meta.source_url:
        lines.append(f"Source: {meta.source_url}")
    lines.append(f"Relevance Score: {doc.score:.4f}")
    lines.append("---")
    lines.append(doc.content)
    return "\n".join(lines)


def build_evidence_context(
    documents: Sequence[RetrievedDocument],
    web_results: Sequence[str],
) -> str:
    """Render documents and web results as the prompt's context block."""
    parts: List[str] = []
    if documents:
        parts.append("\n\n".join(format_document(doc, i) for i, doc in enumerate(documents)))
    if web_results:
        web_lines = ["[Web Search Results]"]
        for i, result in enumerate(web_results, start=1):
            web_lines.append(f"\n[Web Result {i}]")
            web_lines.append(result)
        parts.append("\n".join(web_lines))
    if not parts:
        return NO_EVIDENCE_CONTEXT
    return "\n\n".join(parts)


def history_with_summary(history: str, summary: Optional[str]) -> str:
    """Prefix the recent-turn history with the rolling conversation summary."""
    if not summary:
        return history
    block = f"Summary of earlier conversation:\n{summary}"
    return f"{block}\n\n{history}" if history else block
