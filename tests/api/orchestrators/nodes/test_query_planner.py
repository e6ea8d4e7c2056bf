"""
Tests for the query planner node.

Tests verify:
- Complex questions yield between two and four validated sub-queries
- Invalid sub-queries are dropped; fewer than two valid means "simple"
- Any failure passes the question through as simple
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from api.llm.llm_service import ModelRole
from api.orchestrators.nodes.query_planner import QueryPlannerNode, parse_query_plan
from libs.common.errors import CircuitOpenError
from tests.factories import make_state

SELECTION_SUB_QUERY = {
    "query": "How do I appeal a swimming team selection?",
    "domain": "team_selection",
    "intent": "procedural",
    "ngbIds": ["usa_swimming"],
}
DOPING_SUB_QUERY = {
    "query": "What happens after a missed doping test?",
    "domain": "anti_doping",
    "intent": "factual",
}


def plan(*sub_queries, complex_query=True):
    return json.dumps({"isComplex": complex_query, "subQueries": list(sub_queries)})


class TestParseQueryPlan:
    def test_complex_plan(self):
        sub_queries, warnings = parse_query_plan(plan(SELECTION_SUB_QUERY, DOPING_SUB_QUERY))

        assert warnings == []
        assert [sq.domain for sq in sub_queries] == ["team_selection", "anti_doping"]
        assert sub_queries[0].ngb_ids == ["usa_swimming"]
        assert sub_queries[1].ngb_ids == []

    def test_simple_plan(self):
        assert parse_query_plan(plan(SELECTION_SUB_QUERY, DOPING_SUB_QUERY, complex_query=False)) == ([], [])

    def test_invalid_domain_dropped_below_minimum(self):
        bad = dict(DOPING_SUB_QUERY, domain="tax_law")

        sub_queries, warnings = parse_query_plan(plan(SELECTION_SUB_QUERY, bad))

        assert sub_queries == []
        assert any("tax_law" in w for w in warnings)

    def test_invalid_intent_defaults_to_general(self):
        odd = dict(DOPING_SUB_QUERY, intent="gossip")

        sub_queries, warnings = parse_query_plan(plan(SELECTION_SUB_QUERY, odd))

        assert sub_queries[1].intent == "general"
        assert warnings

    def test_capped_at_four(self):
        items = [dict(SELECTION_SUB_QUERY, query=f"question {i}") for i in range(6)]

        sub_queries, _ = parse_query_plan(plan(*items))

        assert len(sub_queries) == 4


class TestQueryPlannerNode:
    @pytest.mark.asyncio
    async def test_decomposes_question(self):
        llm = MagicMock()
        llm.invoke = AsyncMock(return_value=plan(SELECTION_SUB_QUERY, DOPING_SUB_QUERY))

        patch = await QueryPlannerNode(llm)(make_state(topic_domain="team_selection"))

        assert patch["is_complex_query"] is True
        assert len(patch["sub_queries"]) == 2
        assert llm.invoke.await_args.args[0] == ModelRole.PLANNER

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [CircuitOpenError("llm"), RuntimeError("boom")])
    async def test_failure_passes_through(self, error):
        llm = MagicMock()
        llm.invoke = AsyncMock(side_effect=error)

        patch = await QueryPlannerNode(llm)(make_state())

        assert patch == {"is_complex_query": False, "sub_queries": []}

    @pytest.mark.asyncio
    async def test_malformed_output_passes_through(self):
        llm = MagicMock()
        llm.invoke = AsyncMock(return_value="two questions")

        patch = await QueryPlannerNode(llm)(make_state())

        assert patch == {"is_complex_query": False, "sub_queries": []}
