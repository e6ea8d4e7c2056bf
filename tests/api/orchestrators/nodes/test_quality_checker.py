"""
Tests for the quality checker node.

Tests verify:
- The verdict is derived from the score threshold and critical issues
- Fallback answers and failures produce a passing verdict
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from api.llm.llm_service import ModelRole
from api.orchestrators.nodes.quality_checker import QualityCheckerNode, parse_quality_verdict, pass_result
from api.orchestrators.nodes.synthesizer import NO_EVIDENCE_ANSWER
from libs.common.errors import CircuitOpenError, MalformedModelOutputError
from tests.factories import make_document, make_state


def verdict(score, issues=(), critique="", passed=True):
    return json.dumps({"passed": passed, "score": score, "issues": list(issues), "critique": critique})


CRITICAL_ISSUE = {"type": "hallucination_signal", "description": "Invented deadline", "severity": "critical"}
MINOR_ISSUE = {"type": "incomplete", "description": "No next steps", "severity": "minor"}


class TestParseQualityVerdict:
    def test_passes_above_threshold(self):
        result, warnings = parse_quality_verdict(verdict(0.8, [MINOR_ISSUE]), 0.6)

        assert result.passed is True
        assert result.issues[0].severity == "minor"
        assert warnings == []

    def test_fails_below_threshold_despite_model_verdict(self):
        result, _ = parse_quality_verdict(verdict(0.4, passed=True, critique="Be specific."), 0.6)

        assert result.passed is False
        assert result.critique == "Be specific."

    def test_critical_issue_fails(self):
        result, _ = parse_quality_verdict(verdict(0.9, [CRITICAL_ISSUE]), 0.6)

        assert result.passed is False

    def test_invalid_issue_skipped(self):
        result, warnings = parse_quality_verdict(
            verdict(0.7, [{"type": "typo", "description": "x", "severity": "minor"}, MINOR_ISSUE]), 0.6
        )

        assert len(result.issues) == 1
        assert len(warnings) == 1

    def test_score_clamped(self):
        result, _ = parse_quality_verdict(verdict(1.7), 0.6)

        assert result.score == 1.0

    @pytest.mark.parametrize("score", ["high", True, None])
    def test_non_numeric_score(self, score):
        with pytest.raises(MalformedModelOutputError):
            parse_quality_verdict(json.dumps({"score": score}), 0.6)


def mock_llm(reply=None, error=None):
    llm = MagicMock()
    llm.invoke = AsyncMock(return_value=reply, side_effect=error)
    return llm


def answered_state(**fields):
    return make_state(
        "When must I appeal?",
        answer="Appeals must be filed within 48 hours [Selection Procedures].",
        retrieved_documents=[make_document("Appeals must be filed within 48 hours.")],
        **fields,
    )


class TestQualityCheckerNode:
    @pytest.mark.asyncio
    async def test_failing_verdict(self, settings):
        llm = mock_llm(verdict(0.3, [CRITICAL_ISSUE], critique="Remove the invented deadline."))

        patch = await QualityCheckerNode(llm, settings)(answered_state())

        result = patch["quality_check_result"]
        assert result.passed is False
        assert result.critique == "Remove the invented deadline."
        assert llm.invoke.await_args.args[0] == ModelRole.QUALITY_CHECKER

    @pytest.mark.asyncio
    async def test_fallback_answer_skips_review(self, settings):
        llm = mock_llm(verdict(0.1))

        patch = await QualityCheckerNode(llm, settings)(make_state(answer=NO_EVIDENCE_ANSWER))

        assert patch["quality_check_result"] == pass_result()
        llm.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [CircuitOpenError("llm"), RuntimeError("boom")])
    async def test_failure_passes(self, settings, error):
        patch = await QualityCheckerNode(mock_llm(error=error), settings)(answered_state())

        assert patch["quality_check_result"].passed is True

    @pytest.mark.asyncio
    async def test_malformed_output_passes(self, settings):
        patch = await QualityCheckerNode(mock_llm("looks fine to me"), settings)(answered_state())

        assert patch["quality_check_result"].passed is True
