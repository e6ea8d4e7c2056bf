"""
quality_checker: reviews synthesized drafts for specificity, grounding
and completeness before they are released to the client.

Fail-open: any error, a missing answer, or one of the known fallback
answers yields a passing verdict so the draft goes out unchanged.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Tuple

import structlog
from langsmith import traceable
from pydantic import ValidationError

from api.composer.context import build_contextual_query, build_evidence_context
from api.composer.prompts import build_quality_check_messages
from api.llm.llm_service import LLMService, ModelRole
from api.orchestrators.nodes.synthesizer import is_fallback_answer
from api.schemas.agent_state import QualityCheckResult, QualityIssue, RunState
from libs.common.errors import CircuitOpenError, MalformedModelOutputError
from libs.common.settings import Settings
from libs.utils.json_parse import parse_llm_json_object

logger = structlog.get_logger(__name__)


def pass_result() -> QualityCheckResult:
    return QualityCheckResult(passed=True, score=1.0, issues=[], critique="")


def parse_quality_verdict(raw: str, pass_threshold: float) -> Tuple[QualityCheckResult, List[str]]:
    """Return ``(verdict, warnings)``.

    The model's own ``passed`` field is ignored: a draft passes when its
    score reaches ``pass_threshold`` and no issue is critical. Invalid
    issues are skipped with a warning.
    """
    data = parse_llm_json_object(raw)
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise MalformedModelOutputError(f"Quality score is not a number: {score!r}")
    score = max(0.0, min(1.0, float(score)))

    warnings: List[str] = []
    issues: List[QualityIssue] = []
    raw_issues = data.get("issues")
    for item in raw_issues if isinstance(raw_issues, list) else []:
        try:
            issues.append(QualityIssue.model_validate(item))
        except ValidationError:
            warnings.append(f"Skipped invalid quality issue: {item!r}")

    critique = data.get("critique")
    passed = score >= pass_threshold and not any(i.severity == "critical" for i in issues)
    return (
        QualityCheckResult(
            passed=passed,
            score=score,
            issues=issues,
            critique=critique if isinstance(critique, str) else "",
        ),
        warnings,
    )


class QualityCheckerNode:
    def __init__(self, llm: LLMService, settings: Settings):
        self.llm = llm
        self.settings = settings

    @traceable(
        run_type="llm",
        name="quality_checker",
        tags=["evaluation", "quality", "athlete-support"]
    )
    async def __call__(self, state: RunState) -> Dict[str, Any]:
        start_time = time.time()
        if not state.answer or is_fallback_answer(state.answer):
            return {"quality_check_result": pass_result()}

        current_message, _ = build_contextual_query(state.messages)
        if not current_message:
            return {"quality_check_result": pass_result()}

        logger.info(
            "quality_checker start",
            answer_length=len(state.answer),
            retry_count=state.quality_retry_count,
            trace_id=state.trace_id,
        )
        try:
            raw = await self.llm.invoke(
                ModelRole.QUALITY_CHECKER,
                build_quality_check_messages(
                    state.answer,
                    current_message,
                    build_evidence_context(state.retrieved_documents, state.web_search_results),
                    state.query_intent,
                ),
            )
            verdict, warnings = parse_quality_verdict(raw, self.settings.quality_pass_threshold)
        except CircuitOpenError:
            logger.warning("quality_checker circuit open, passing through", trace_id=state.trace_id)
            return {"quality_check_result": pass_result()}
        except Exception as e:
            logger.warning("quality_checker failed, passing through", error=str(e), trace_id=state.trace_id)
            return {"quality_check_result": pass_result()}

        if warnings:
            logger.warning("quality_checker output had issues", warnings=warnings, trace_id=state.trace_id)

        logger.info(
            "quality_checker completed",
            passed=verdict.passed,
            score=verdict.score,
            issue_count=len(verdict.issues),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            trace_id=state.trace_id,
        )
        return {"quality_check_result": verdict}
