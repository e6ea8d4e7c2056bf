"""emotional_support: tone and resource context for non-neutral emotional states."""

from typing import Any, Dict

import structlog

from api.composer.empathy import generate_support_context
from api.schemas.agent_state import RunState

logger = structlog.get_logger(__name__)


async def emotional_support_node(state: RunState) -> Dict[str, Any]:
    context = generate_support_context(state.emotional_state, state.topic_domain)
    logger.info(
        "emotional_support completed",
        emotional_state=state.emotional_state,
        topic_domain=state.topic_domain,
        has_context=context is not None,
        trace_id=state.trace_id,
    )
    return {"emotional_support_context": context}
