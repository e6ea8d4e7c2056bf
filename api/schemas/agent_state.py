"""Run state schema for the athlete support agent.

This module defines the state object that flows through the orchestration
graph. A fresh state is built for every invocation from the caller's
messages plus the persisted conversation summary; each node returns a
partial patch that the graph engine merges by shallow key replacement.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Literal, Optional

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TopicDomain = Literal[
    "team_selection",
    "dispute_resolution",
    "safesport",
    "anti_doping",
    "eligibility",
    "governance",
    "athlete_rights",
]
QueryIntent = Literal["factual", "procedural", "deadline", "escalation", "general"]
EmotionalState = Literal["neutral", "distressed", "panicked", "fearful"]
EscalationCategory = Literal["imminent_danger", "non_imminent_misconduct", "procedural_deadline"]
AuthorityLevel = Literal[
    "law",
    "international_rule",
    "usopc_governance",
    "usopc_policy_procedure",
    "independent_office",
    "anti_doping_national",
    "ngb_policy_procedure",
    "games_event_specific",
    "educational_guidance",
]

VALID_TOPIC_DOMAINS: tuple[str, ...] = (
    "team_selection",
    "dispute_resolution",
    "safesport",
    "anti_doping",
    "eligibility",
    "governance",
    "athlete_rights",
)
VALID_QUERY_INTENTS: tuple[str, ...] = ("factual", "procedural", "deadline", "escalation", "general")
VALID_EMOTIONAL_STATES: tuple[str, ...] = ("neutral", "distressed", "panicked", "fearful")
VALID_ESCALATION_CATEGORIES: tuple[str, ...] = (
    "imminent_danger",
    "non_imminent_misconduct",
    "procedural_deadline",
)


class DocumentMetadata(BaseModel):
    """Metadata attached to an indexed governance document chunk.

    Accepts both snake_case and camelCase keys from the document store.
    """

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    ngb_id: Optional[str] = Field(default=None, description="National governing body identifier")
    topic_domain: Optional[str] = Field(default=None, description="Topic domain of the source document")
    document_type: Optional[str] = Field(default=None, description="Policy, bylaws, rule book, ...")
    source_url: Optional[str] = Field(default=None, description="Canonical URL of the source document")
    document_title: Optional[str] = Field(default=None, description="Document title")
    section_title: Optional[str] = Field(default=None, description="Section heading of the chunk")
    effective_date: Optional[str] = Field(default=None, description="Effective date as published")
    authority_level: Optional[str] = Field(default=None, description="Position in the authority hierarchy")


class RetrievedDocument(BaseModel):
    """A retrieved evidence chunk."""

    content: str = Field(description="Chunk text; the deduplication key")
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    score: float = Field(default=0.0, description="Fused RRF score")
    distance: Optional[float] = Field(
        default=None, description="Raw vector distance (absent for lexical-only hits)"
    )


class WebSearchResult(BaseModel):
    title: str = ""
    url: str
    content: str = ""
    score: Optional[float] = None


class Citation(BaseModel):
    """Citation information for retrieved sources."""

    title: str = Field(description="Document or page title")
    url: Optional[str] = Field(default=None, description="Source URL if available")
    document_type: str = Field(default="document", description="Document type, or 'web' for web results")
    section: Optional[str] = Field(default=None, description="Section title")
    effective_date: Optional[str] = Field(default=None, description="Effective date")
    snippet: str = Field(default="", description="Short excerpt of the cited text")
    authority_level: Optional[str] = Field(default=None, description="Authority level of the source")


class EscalationInfo(BaseModel):
    """Referral to an external authority."""

    target: str = Field(description="Escalation target identifier")
    organization: str = Field(description="Organization name")
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_url: Optional[str] = None
    reason: str = Field(description="Why the user is being referred")
    reason_category: EscalationCategory = Field(description="Underlying reason category")
    urgency: Literal["immediate", "standard"] = Field(description="Referral priority")


class QualityIssue(BaseModel):
    type: Literal["generic_response", "hallucination_signal", "incomplete", "missing_specificity"]
    description: str
    severity: Literal["critical", "major", "minor"]


class QualityCheckResult(BaseModel):
    """Verdict of the quality checker on a synthesized draft."""

    passed: bool
    score: float = Field(ge=0.0, le=1.0)
    issues: List[QualityIssue] = Field(default_factory=list)
    critique: str = ""


class SubQuery(BaseModel):
    query: str
    domain: str
    intent: str = "general"
    ngb_ids: List[str] = Field(default_factory=list)


class EmotionalSupportContext(BaseModel):
    acknowledgment: str
    guidance: str
    safety_resources: List[str] = Field(default_factory=list)
    tone_modifiers: List[str] = Field(default_factory=list)


class RunState(BaseModel):
    """State object for a single agent run.

    Owned by the graph engine for the duration of the run. Nodes receive
    the current state and return partial dicts; unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    # Tracing
    trace_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Unique trace identifier")

    # Conversation
    messages: List[BaseMessage] = Field(default_factory=list, description="Conversation messages")
    conversation_id: Optional[str] = Field(default=None, description="Persistent conversation identifier")
    conversation_summary: Optional[str] = Field(default=None, description="Rolling summary of earlier turns")
    user_sport: Optional[str] = Field(default=None, description="Sport the user is associated with")

    # Classification
    topic_domain: Optional[str] = Field(default=None, description="Classified topic domain")
    detected_ngb_ids: List[str] = Field(default_factory=list, description="Detected organization identifiers")
    query_intent: Optional[str] = Field(default=None, description="Classified query intent")
    has_time_constraint: bool = Field(default=False, description="Urgency or deadline signals present")
    needs_clarification: bool = Field(default=False)
    clarification_question: Optional[str] = Field(default=None)
    escalation_reason: Optional[str] = Field(default=None)
    escalation_category: Optional[str] = Field(default=None)
    emotional_state: str = Field(default="neutral")

    # Planning
    is_complex_query: bool = Field(default=False)
    sub_queries: List[SubQuery] = Field(default_factory=list)

    # Retrieval
    retrieved_documents: List[RetrievedDocument] = Field(default_factory=list)
    web_search_results: List[str] = Field(default_factory=list)
    web_search_result_urls: List[WebSearchResult] = Field(default_factory=list)
    retrieval_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    retrieval_status: Literal["success", "error"] = Field(default="success")
    expansion_attempted: bool = Field(default=False)
    reformulated_queries: List[str] = Field(default_factory=list)

    # Generation
    emotional_support_context: Optional[EmotionalSupportContext] = Field(default=None)
    answer: Optional[str] = Field(default=None)
    quality_check_result: Optional[QualityCheckResult] = Field(default=None)
    quality_retry_count: int = Field(default=0, ge=0)
    citations: List[Citation] = Field(default_factory=list)
    escalation: Optional[EscalationInfo] = Field(default=None)
    disclaimer: Optional[str] = Field(default=None)
    disclaimer_required: bool = Field(default=True)

    def last_user_message(self) -> str:
        """Text of the most recent human message, or an empty string."""
        for message in reversed(self.messages):
            if message.type == "human":
                content = message.content
                return content if isinstance(content, str) else str(content)
        return ""

    def apply(self, patch: Dict[str, Any]) -> "RunState":
        """Return a new state with ``patch`` merged by shallow key replacement.

        The merged state is validated, so a patch cannot break field
        constraints (ranges, closed vocabularies).

        Raises:
            ValueError: unknown keys, or a pydantic ``ValidationError``.
        """
        fields = type(self).model_fields
        unknown = set(patch) - set(fields)
        if unknown:
            raise ValueError(f"Unknown state keys: {sorted(unknown)}")
        merged = {name: getattr(self, name) for name in fields}
        merged.update(patch)
        return type(self).model_validate(merged)


class StreamEvent(BaseModel):
    """Client-facing streaming event."""

    type: Literal[
        "status",
        "text-delta",
        "citations",
        "escalation",
        "answer-reset",
        "discovered-urls",
        "error",
        "done",
    ] = Field(description="Event type")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")


def create_initial_state(
    messages: List[BaseMessage],
    conversation_id: Optional[str] = None,
    conversation_summary: Optional[str] = None,
    user_sport: Optional[str] = None,
) -> RunState:
    """Create the initial state for a new run."""
    return RunState(
        messages=list(messages),
        conversation_id=conversation_id,
        conversation_summary=conversation_summary,
        user_sport=user_sport,
    )
