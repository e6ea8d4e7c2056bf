"""
synthesizer: grounded, cited answer generation.

Streams the answer through the synthesizer model so tokens reach the
client while they are generated. When re-entered after a failed quality
check, the reviewer critique is included in the prompt and the retry
counter is incremented here.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import structlog
from langsmith import traceable

from api.composer.context import build_contextual_query, build_evidence_context, history_with_summary
from api.composer.empathy import tone_guidance
from api.composer.prompts import build_synthesis_messages
from api.llm.llm_service import LLMService, ModelRole
from api.schemas.agent_state import QualityCheckResult, RunState
from libs.common.errors import CircuitOpenError

logger = structlog.get_logger(__name__)

UNCLEAR_QUESTION_ANSWER = "I wasn't able to understand your question. Could you please rephrase it?"
NO_EVIDENCE_ANSWER = (
    "I was unable to search our knowledge base or find information that answers your question. "
    "Rather than guess, I recommend contacting the Athlete Ombuds at ombudsman@usathlete.org "
    "or 719-866-5000 for free, confidential guidance."
)
UNAVAILABLE_ANSWER = (
    "I'm temporarily unable to generate a response. Please try again in a few minutes, or contact "
    "the Athlete Ombuds at ombudsman@usathlete.org or 719-866-5000 for direct assistance."
)
ERROR_ANSWER = (
    "I encountered an error while generating your answer. Please try again, or contact the "
    "Athlete Ombuds at ombudsman@usathlete.org or 719-866-5000 for direct assistance."
)

# Answers that were not generated from evidence; the quality checker passes them through
FALLBACK_ANSWER_PREFIXES = (
    "I wasn't able to understand your question",
    "I was unable to search our knowledge base",
    "I'm temporarily unable to generate a response",
    "I encountered an error while generating your answer",
)


def is_fallback_answer(answer: str) -> bool:
    return answer.startswith(FALLBACK_ANSWER_PREFIXES)


def format_critique(result: Optional[QualityCheckResult]) -> str:
    """Reviewer feedback for a regeneration; empty when the last check passed."""
    if result is None or result.passed:
        return ""
    lines = [result.critique] if result.critique else []
    for issue in result.issues:
        lines.append(f"- [{issue.severity}] {issue.type}: {issue.description}")
    return "\n".join(lines)


class SynthesizerNode:
    def __init__(self, llm: LLMService):
        self.llm = llm

    @traceable(
        run_type="llm",
        name="synthesizer",
        tags=["generation", "synthesis", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        current_message, history = build_contextual_query(state.messages)

        patch: Dict[str, Any] = {}
        check = state.quality_check_result
        retrying = check is not None and not check.passed
        critique = format_critique(check)
        if retrying:
            patch["quality_retry_count"] = state.quality_retry_count + 1

        if not current_message:
            logger.warning("synthesizer received empty user question", trace_id=state.trace_id)
            patch.update(answer=UNCLEAR_QUESTION_ANSWER, disclaimer_required=False)
            return patch

        if not state.retrieved_documents and not state.web_search_results:
            logger.warning(
                "synthesizer has no evidence, returning fallback",
                retrieval_status=state.retrieval_status,
                trace_id=state.trace_id,
            )
            patch.update(answer=NO_EVIDENCE_ANSWER, disclaimer_required=False)
            return patch

        logger.info(
            "synthesizer start",
            document_count=len(state.retrieved_documents),
            web_result_count=len(state.web_search_results),
            query_intent=state.query_intent,
            retry=retrying,
            trace_id=state.trace_id,
        )

        messages = build_synthesis_messages(
            build_evidence_context(state.retrieved_documents, state.web_search_results),
            current_message,
            query_intent=state.query_intent,
            conversation_history=history_with_summary(history, state.conversation_summary),
            tone_guidance=tone_guidance(state.emotional_support_context),
            critique=critique,
        )

        try:
            answer = await self.llm.stream(ModelRole.SYNTHESIZER, messages)
        except CircuitOpenError:
            logger.warning("synthesizer circuit open", trace_id=state.trace_id)
            patch.update(answer=UNAVAILABLE_ANSWER, disclaimer_required=False)
            return patch
        except Exception as e:
            logger.error("synthesizer failed", error=str(e), trace_id=state.trace_id)
            patch.update(answer=ERROR_ANSWER, disclaimer_required=False)
            return patch

        if not answer.strip():
            logger.warning("synthesizer produced empty answer", trace_id=state.trace_id)
            patch.update(answer=ERROR_ANSWER, disclaimer_required=False)
            return patch

        logger.info(
            "synthesizer completed",
            answer_length=len(answer),
            quality_retry_count=patch.get("quality_retry_count", state.quality_retry_count),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        patch["answer"] = answer
        return patch
