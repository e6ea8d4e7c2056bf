"""
Tests for the retriever node.

Tests verify:
- Authority boost ordering and the metadata filters built from state
- Narrow search first, broadened when too few hits come back
- Sub-query mode runs one filtered search per sub-query
- Backend failures produce an empty, "error" status result
"""

import pytest

from api.orchestrators.nodes.retriever import (
    MAX_AUTHORITY_BOOST,
    RetrieverNode,
    authority_boost,
    build_broad_filter,
    build_narrow_filter,
    build_sub_query_filter,
    rank_by_authority,
)
from api.schemas.agent_state import SubQuery
from api.tools.retrieval_engine import HybridRetriever
from tests.factories import FakeLexicalSearch, FakeVectorSearch, make_breaker, make_document, make_state


class TestAuthorityBoost:
    def test_bounds(self):
        assert authority_boost("law") == pytest.approx(MAX_AUTHORITY_BOOST)
        assert authority_boost("educational_guidance") == pytest.approx(0.0)
        assert authority_boost(None) == 0.0
        assert authority_boost("blog_post") == 0.0

    def test_monotonic(self):
        assert authority_boost("usopc_governance") > authority_boost("ngb_policy_procedure")

    def test_rank_prefers_higher_authority_on_close_scores(self):
        guidance = make_document("guide", score=0.0165, authority_level="educational_guidance")
        bylaw = make_document("bylaw", score=0.0160, authority_level="usopc_governance")
        unknown = make_document("unknown", score=0.0100)

        ranked = rank_by_authority([guidance, unknown, bylaw], limit=2)

        assert [d.content for d in ranked] == ["bylaw", "guide"]


class TestFilters:
    def test_narrow_filter(self):
        state = make_state(detected_ngb_ids=["usa-swimming"], topic_domain="team_selection")

        assert build_narrow_filter(state) == {"ngb_id": "usa-swimming", "topic_domain": "team_selection"}

    def test_narrow_filter_multiple_ngbs(self):
        state = make_state(detected_ngb_ids=["usa-swimming", "usa-fencing"])

        assert build_narrow_filter(state) == {"ngb_id": {"$in": ["usa-swimming", "usa-fencing"]}}

    def test_no_narrow_filter_without_signals(self):
        assert build_narrow_filter(make_state()) is None

    def test_broad_filter_includes_universal_documents(self):
        state = make_state(detected_ngb_ids=["usa-swimming"], topic_domain="team_selection")

        assert build_broad_filter(state) == {"$or": [{"ngb_id": "usa-swimming"}, {"ngb_id": None}]}
        assert build_broad_filter(make_state(topic_domain="team_selection")) is None

    def test_sub_query_filter(self):
        sub_query = SubQuery(query="q", domain="anti_doping", intent="factual", ngb_ids=["usa-cycling"])

        assert build_sub_query_filter(sub_query) == {"topic_domain": "anti_doping", "ngb_id": "usa-cycling"}


def make_node(settings, vector, lexical=None):
    retriever = HybridRetriever(
        vector,
        make_breaker("vector"),
        lexical,
        make_breaker("lexical") if lexical is not None else None,
    )
    return RetrieverNode(retriever, settings)


class TestRetrieverNode:
    @pytest.mark.asyncio
    async def test_narrow_results_sufficient(self, settings, vector_hits, lexical_hits):
        vector = FakeVectorSearch(vector_hits)
        lexical = FakeLexicalSearch(lexical_hits)
        node = make_node(settings, vector, lexical)
        state = make_state(detected_ngb_ids=["usa-swimming"], topic_domain="team_selection")

        patch = await node(state)

        assert patch["retrieval_status"] == "success"
        assert len(vector.calls) == 1
        assert vector.calls[0]["filter"] == {"ngb_id": "usa-swimming", "topic_domain": "team_selection"}
        assert vector.calls[0]["k"] == settings.narrow_filter_top_k
        assert {d.metadata.ngb_id for d in patch["retrieved_documents"]} == {"usa-swimming"}
        assert 0.0 < patch["retrieval_confidence"] <= 1.0

    @pytest.mark.asyncio
    async def test_broadens_when_narrow_is_thin(self, settings, vector_hits):
        vector = FakeVectorSearch(vector_hits)
        node = make_node(settings, vector)
        state = make_state(detected_ngb_ids=["usa-swimming"], topic_domain="team_selection")

        patch = await node(state)

        assert len(vector.calls) == 2
        assert vector.calls[1]["k"] == settings.broaden_filter_top_k
        assert vector.calls[1]["filter"] == {"$or": [{"ngb_id": "usa-swimming"}, {"ngb_id": None}]}
        contents = [d.content for d in patch["retrieved_documents"]]
        assert len(contents) == len(set(contents)) == 2

    @pytest.mark.asyncio
    async def test_unfiltered_search_without_signals(self, settings, vector_hits):
        vector = FakeVectorSearch(vector_hits)
        node = make_node(settings, vector)

        patch = await node(make_state())

        assert [c["filter"] for c in vector.calls] == [None]
        assert len(patch["retrieved_documents"]) == 2

    @pytest.mark.asyncio
    async def test_sub_query_mode(self, settings, vector_hits):
        vector = FakeVectorSearch(vector_hits)
        node = make_node(settings, vector)
        state = make_state(
            is_complex_query=True,
            sub_queries=[
                SubQuery(query="selection appeal", domain="team_selection", intent="procedural"),
                SubQuery(query="section 9 claim", domain="dispute_resolution", intent="procedural"),
            ],
        )

        patch = await node(state)

        assert sorted(c["query"] for c in vector.calls) == ["section 9 claim", "selection appeal"]
        assert {c["filter"]["topic_domain"] for c in vector.calls} == {"team_selection", "dispute_resolution"}
        assert len(patch["retrieved_documents"]) == 2

    @pytest.mark.asyncio
    async def test_respects_top_k(self, settings, vector_hits):
        settings.retrieval_top_k = 1
        node = make_node(settings, FakeVectorSearch(vector_hits))

        patch = await node(make_state())

        assert len(patch["retrieved_documents"]) == 1

    @pytest.mark.asyncio
    async def test_backend_failure(self, settings):
        node = make_node(settings, FakeVectorSearch(error=ConnectionError("db down")))

        patch = await node(make_state())

        assert patch == {"retrieved_documents": [], "retrieval_confidence": 0.0, "retrieval_status": "error"}
