"""clarify: ask the athlete for the missing detail instead of guessing."""

from typing import Any, Dict

import structlog

from api.composer.empathy import with_empathy
from api.schemas.agent_state import RunState

logger = structlog.get_logger(__name__)

DEFAULT_CLARIFICATION = (
    "I'd like to help you, but I need a bit more information. Could you please specify "
    "which sport or organization your question relates to?"
)


async def clarify_node(state: RunState) -> Dict[str, Any]:
    question = (state.clarification_question or "").strip() or DEFAULT_CLARIFICATION

    logger.info(
        "clarify completed",
        topic_domain=state.topic_domain,
        used_default=question == DEFAULT_CLARIFICATION,
        trace_id=state.trace_id,
    )
    return {
        "answer": with_empathy(question, state.emotional_state),
        "disclaimer_required": False,
    }
