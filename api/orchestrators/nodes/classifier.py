"""classifier: topic, intent, urgency and emotional state of the latest message."""

from __future__ import annotations

import re
import time
from typing import Any, Dict

import structlog
from langsmith import traceable

from api.composer.context import build_contextual_query, history_with_summary
from api.composer.prompts import build_classifier_messages
from api.llm.llm_service import LLMService, ModelRole
from api.schemas.agent_state import (
    VALID_EMOTIONAL_STATES,
    VALID_ESCALATION_CATEGORIES,
    VALID_QUERY_INTENTS,
    VALID_TOPIC_DOMAINS,
    RunState,
)
from libs.utils.json_parse import parse_llm_json_object

logger = structlog.get_logger(__name__)

_SAFETY_SIGNAL_RE = re.compile(
    r"\b(abus\w*|assault\w*|harass\w*|groom\w*|molest\w*|misconduct|danger\w*|threaten\w*|hurt\w*|hit(?:s|ting)? me)\b",
    re.IGNORECASE,
)
_IMMINENT_SIGNAL_RE = re.compile(
    r"\b(immediate danger|in danger|right now|unsafe|threatening to (?:hurt|kill)|going to (?:hurt|kill))\b",
    re.IGNORECASE,
)


def _bool(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _optional_str(value: Any):
    return value.strip() if isinstance(value, str) and value.strip() else None


def parse_classifier_output(raw: str) -> Dict[str, Any]:
    """Validate the classifier's JSON and convert it to a state patch.

    Invalid enum values are dropped to their defaults; ``shouldEscalate``
    is folded into ``query_intent == "escalation"``.

    Raises:
        MalformedModelOutputError: the reply is not a JSON object.
    """
    data = parse_llm_json_object(raw)

    topic_domain = data.get("topicDomain")
    query_intent = data.get("queryIntent")
    emotional_state = data.get("emotionalState")
    ngb_ids = data.get("detectedNgbIds")
    should_escalate = _bool(data.get("shouldEscalate"))

    category = data.get("escalationCategory")
    if category not in VALID_ESCALATION_CATEGORIES:
        category = "non_imminent_misconduct" if should_escalate else None

    intent = query_intent if query_intent in VALID_QUERY_INTENTS else "general"

    return {
        "topic_domain": topic_domain if topic_domain in VALID_TOPIC_DOMAINS else None,
        "detected_ngb_ids": [i for i in ngb_ids if isinstance(i, str) and i] if isinstance(ngb_ids, list) else [],
        "query_intent": "escalation" if should_escalate else intent,
        "has_time_constraint": _bool(data.get("hasTimeConstraint")),
        "needs_clarification": _bool(data.get("needsClarification")),
        "clarification_question": _optional_str(data.get("clarificationQuestion")),
        "escalation_reason": _optional_str(data.get("escalationReason")) if should_escalate else None,
        "escalation_category": category if should_escalate or intent == "escalation" else None,
        "emotional_state": emotional_state if emotional_state in VALID_EMOTIONAL_STATES else "neutral",
    }


def fallback_classification(message: str) -> Dict[str, Any]:
    """Safe defaults used when the classifier call fails.

    Messages carrying safety signals are still routed to escalation.
    """
    patch: Dict[str, Any] = {
        "topic_domain": None,
        "detected_ngb_ids": [],
        "query_intent": "general",
        "has_time_constraint": False,
        "needs_clarification": False,
        "clarification_question": None,
        "escalation_reason": None,
        "escalation_category": None,
    }
    if _SAFETY_SIGNAL_RE.search(message):
        imminent = bool(_IMMINENT_SIGNAL_RE.search(message))
        patch.update(
            query_intent="escalation",
            escalation_reason="Message contains safety signals; classification unavailable",
            escalation_category="imminent_danger" if imminent else "non_imminent_misconduct",
        )
    return patch


class ClassifierNode:
    """LLM classification with fail-open defaults."""

    def __init__(self, llm: LLMService):
        self.llm = llm

    @traceable(
        run_type="llm",
        name="classifier",
        tags=["classification", "routing", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        current_message, history = build_contextual_query(state.messages)

        if not current_message:
            logger.warning("classifier received empty message, using defaults", trace_id=state.trace_id)
            return {"query_intent": "general", "needs_clarification": False}

        logger.info("classifier start", trace_id=state.trace_id)
        try:
            raw = await self.llm.invoke(
                ModelRole.CLASSIFIER,
                build_classifier_messages(current_message, history_with_summary(history, state.conversation_summary)),
            )
            patch = parse_classifier_output(raw)
        except Exception as e:
            logger.error("classifier failed", error=str(e), trace_id=state.trace_id)
            patch = fallback_classification(current_message)
            logger.info(
                "classifier fallback applied",
                query_intent=patch["query_intent"],
                escalation_category=patch["escalation_category"],
                trace_id=state.trace_id,
            )
            return patch

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "classifier completed",
            topic_domain=patch["topic_domain"],
            query_intent=patch["query_intent"],
            detected_ngb_ids=patch["detected_ngb_ids"],
            has_time_constraint=patch["has_time_constraint"],
            needs_clarification=patch["needs_clarification"],
            emotional_state=patch["emotional_state"],
            duration_ms=round(duration_ms, 2),
            trace_id=state.trace_id,
        )
        return patch
