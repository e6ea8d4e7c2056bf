"""disclaimer_guard: append the domain disclaimer to substantive answers."""

from typing import Any, Dict

import structlog

from api.composer.disclaimers import DISCLAIMER_SEPARATOR, get_disclaimer
from api.schemas.agent_state import RunState

logger = structlog.get_logger(__name__)


async def disclaimer_guard_node(state: RunState) -> Dict[str, Any]:
    if not state.answer or not state.disclaimer_required:
        logger.info(
            "disclaimer_guard skipped",
            has_answer=bool(state.answer),
            disclaimer_required=state.disclaimer_required,
            trace_id=state.trace_id,
        )
        return {}

    disclaimer = get_disclaimer(state.topic_domain)
    logger.info("disclaimer_guard completed", topic_domain=state.topic_domain or "general", trace_id=state.trace_id)
    return {
        "answer": state.answer + DISCLAIMER_SEPARATOR + disclaimer,
        "disclaimer": disclaimer,
    }
