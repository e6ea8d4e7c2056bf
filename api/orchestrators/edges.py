"""
Routing functions for the agent graph.

Routers return semantic keys; the graph builder maps each key to a node
in its routing table. Feature flags only change those tables (for example
``"expand"`` maps to the researcher when retrieval expansion is disabled),
so the routing decisions themselves stay the same in every configuration.
"""

from typing import Callable, Literal

from api.schemas.agent_state import RunState
from libs.common.settings import Settings

DomainRoute = Literal["clarify", "escalate", "retrieve"]
EvidenceRoute = Literal["synthesize", "support", "expand", "research"]
AnswerRoute = Literal["synthesize", "support"]
QualityRoute = Literal["accept", "retry"]


def route_by_domain(state: RunState) -> DomainRoute:
    """Clarify ambiguous questions, escalate urgent ones, otherwise retrieve."""
    if state.needs_clarification:
        return "clarify"
    if state.query_intent == "escalation":
        return "escalate"
    return "retrieve"


def route_to_answer(state: RunState) -> AnswerRoute:
    """Detour through emotional support when the athlete is not neutral."""
    return "synthesize" if state.emotional_state == "neutral" else "support"


def make_needs_more_info(settings: Settings) -> Callable[[RunState], EvidenceRoute]:
    threshold = settings.confidence_threshold

    def needs_more_info(state: RunState) -> EvidenceRoute:
        """Answer when evidence is sufficient; otherwise expand once, then research the web.

        The expander re-enters this router with ``expansion_attempted`` set,
        so it never runs twice in one run.
        """
        if state.retrieval_confidence >= threshold or state.web_search_results:
            return "synthesize" if state.emotional_state == "neutral" else "support"
        if not state.expansion_attempted:
            return "expand"
        return "research"

    return needs_more_info


def make_route_by_quality(settings: Settings) -> Callable[[RunState], QualityRoute]:
    max_retries = settings.max_quality_retries

    def route_by_quality(state: RunState) -> QualityRoute:
        result = state.quality_check_result
        if result is None or result.passed or state.quality_retry_count >= max_retries:
            return "accept"
        return "retry"

    return route_by_quality
