"""
Tests for BM25 lexical search.

Tests verify:
- Tokenizer lowercases, drops stopwords and keeps hyphenated terms
- Ranking by BM25 score, zero-score hits dropped
- Metadata filters (equality, $in, $or, null)
- Lazy index build and corpus replacement
"""

import pytest

from api.tools.bm25_provider import BM25LexicalSearch, CorpusDocument, matches_filter, tokenize

CORPUS = [
    CorpusDocument(
        id="sel-1",
        content="Team selection procedures for swimming list the trials and the appeal deadline.",
        metadata={"ngb_id": "usa-swimming", "topic_domain": "team_selection"},
    ),
    CorpusDocument(
        id="tue-1",
        content="A therapeutic use exemption must be requested from USADA before using a prohibited substance.",
        metadata={"ngb_id": None, "topic_domain": "anti_doping"},
    ),
    CorpusDocument(
        id="sec9-1",
        content="Section 9 arbitration lets an athlete challenge a denial of the opportunity to participate.",
        metadata={"topic_domain": "dispute_resolution"},
    ),
    CorpusDocument(
        id="safe-1",
        content="Reports of misconduct go to the U.S. Center for SafeSport and may be anonymous.",
        metadata={"ngb_id": "usa-gymnastics", "topic_domain": "safesport"},
    ),
    CorpusDocument(
        id="gov-1",
        content="Athlete representatives hold one third of board seats under the governance rules.",
        metadata={"ngb_id": "usa-fencing", "topic_domain": "governance"},
    ),
]


class TestTokenize:
    def test_stopwords_and_case(self):
        assert tokenize("What is the Appeal Deadline?") == ["appeal", "deadline"]

    def test_hyphenated_terms_kept(self):
        assert tokenize("Anti-doping whereabouts") == ["anti-doping", "whereabouts"]


class TestMatchesFilter:
    def test_equality(self):
        assert matches_filter({"ngb_id": "usa-swimming"}, {"ngb_id": "usa-swimming"})
        assert not matches_filter({"ngb_id": "usa-judo"}, {"ngb_id": "usa-swimming"})

    def test_in(self):
        assert matches_filter({"ngb_id": "usa-judo"}, {"ngb_id": {"$in": ["usa-judo", "usa-swimming"]}})
        assert not matches_filter({"ngb_id": "usa-rowing"}, {"ngb_id": {"$in": ["usa-judo"]}})

    def test_null_matches_missing_key(self):
        assert matches_filter({}, {"ngb_id": None})
        assert matches_filter({"ngb_id": None}, {"ngb_id": None})

    def test_or(self):
        broad = {"$or": [{"ngb_id": "usa-swimming"}, {"ngb_id": None}]}

        assert matches_filter({"ngb_id": "usa-swimming"}, broad)
        assert matches_filter({"topic_domain": "governance"}, broad)
        assert not matches_filter({"ngb_id": "usa-judo"}, broad)

    def test_empty_filter(self):
        assert matches_filter({"anything": 1}, None)
        assert matches_filter({"anything": 1}, {})


class TestBM25LexicalSearch:
    @pytest.mark.asyncio
    async def test_ranks_matching_document_first(self):
        search = BM25LexicalSearch(CORPUS)

        hits = await search.search("therapeutic use exemption", k=3)

        assert hits[0].id == "tue-1"
        assert hits[0].score > 0

    @pytest.mark.asyncio
    async def test_zero_score_hits_dropped(self):
        search = BM25LexicalSearch(CORPUS)

        hits = await search.search("arbitration", k=10)

        assert [h.id for h in hits] == ["sec9-1"]

    @pytest.mark.asyncio
    async def test_filter_applied(self):
        search = BM25LexicalSearch(CORPUS)

        hits = await search.search("arbitration", k=10, filter={"topic_domain": "safesport"})

        assert hits == []

    @pytest.mark.asyncio
    async def test_respects_k(self):
        search = BM25LexicalSearch(CORPUS)

        hits = await search.search("athlete anonymous arbitration therapeutic", k=2)

        assert len(hits) == 2

    @pytest.mark.asyncio
    async def test_empty_query_or_corpus(self):
        assert await BM25LexicalSearch(CORPUS).search("   ", k=5) == []
        assert await BM25LexicalSearch(CORPUS).search("the and of", k=5) == []
        assert await BM25LexicalSearch([]).search("arbitration", k=5) == []

    @pytest.mark.asyncio
    async def test_replace_corpus_rebuilds_index(self):
        search = BM25LexicalSearch(CORPUS[:4])
        assert await search.search("board seats", k=5) == []

        search.replace_corpus(CORPUS)

        hits = await search.search("board seats", k=5)
        assert [h.id for h in hits] == ["gov-1"]
        assert search.corpus_size == 5
