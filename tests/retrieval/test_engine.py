"""Tests for EvidenceAcquisitionEngine caching, de-duplication and expansion."""

import pytest

from proposal_factcheck.retrieval.cache import EvidenceCache
from proposal_factcheck.retrieval.engine import (
    EvidenceAcquisitionEngine,
    dedupe_by_uri,
    exclude_seen,
)
from proposal_factcheck.retrieval.schemas import CorpusAnswer, EvidenceDocument, RetrievalAttempt, SearchTool

CLAIM = "The grant budget is 1.2M OP"


class TestDedupe:
    def test_first_occurrence_wins(self, make_doc) -> None:
        a = make_doc("a", uri="https://x/1")
        b = make_doc("b", uri="https://x/1")
        c = make_doc("c", uri="https://x/2")
        assert [d.id for d in dedupe_by_uri([a, b, c])] == ["a", "c"]

    def test_documents_without_uri_kept(self, make_doc) -> None:
        docs = [make_doc("a", uri=None), make_doc("b", uri=None)]
        assert len(dedupe_by_uri(docs)) == 2

    def test_exclude_seen(self, make_doc) -> None:
        docs = [make_doc("a"), make_doc("b"), make_doc("n", uri=None)]
        kept = exclude_seen(docs, {docs[0].uri})
        assert [d.id for d in kept] == ["b", "n"]


class TestAcquire:
    @pytest.mark.asyncio
    async def test_returns_documents_and_attempts(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory({"hybrid": [make_doc("1"), make_doc("2")]})
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings)
        bundle = await engine.acquire(CLAIM)
        assert [d.id for d in bundle.documents] == ["1", "2"]
        assert bundle.attempts[0].tool == SearchTool.HYBRID
        assert not bundle.from_cache

    @pytest.mark.asyncio
    async def test_duplicates_removed(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory(
            {"hybrid": [make_doc("1"), make_doc("dup", uri=make_doc("1").uri), make_doc("2")]}
        )
        bundle = await EvidenceAcquisitionEngine(retrieval, fake_llm, settings).acquire(CLAIM)
        assert len(bundle.uris) == len(set(bundle.uris)) == 2

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory({"hybrid": [make_doc("1")]})
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings)
        first = await engine.acquire(CLAIM, ["budget"])
        second = await engine.acquire("  the grant BUDGET is 1.2m op", ["budget"])
        assert second.from_cache
        assert second.documents == first.documents
        assert len(retrieval.searches) == 1

    @pytest.mark.asyncio
    async def test_prior_attempts_bypass_cache(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory({"hybrid": [make_doc("1")]})
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings)
        await engine.acquire(CLAIM)
        prior = [RetrievalAttempt(tool=SearchTool.KEYWORD, query="x", result_count=0)]
        bundle = await engine.acquire(CLAIM, prior_attempts=prior)
        assert not bundle.from_cache
        assert len(retrieval.searches) == 2

    @pytest.mark.asyncio
    async def test_seen_uris_filtered_on_miss_and_hit(
        self, fake_llm, retrieval_factory, make_doc, settings
    ) -> None:
        docs = [make_doc("1"), make_doc("2")]
        retrieval = retrieval_factory({"hybrid": docs})
        cache = EvidenceCache()
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings, cache=cache)
        seen = {docs[0].uri}

        miss = await engine.acquire(CLAIM, seen_uris=seen)
        hit = await engine.acquire(CLAIM, seen_uris=seen)

        assert [d.id for d in miss.documents] == ["2"]
        assert [d.id for d in hit.documents] == ["2"]
        assert hit.from_cache
        assert len(cache.get(EvidenceCache.make_key(CLAIM)).documents) == 2

    @pytest.mark.asyncio
    async def test_injected_empty_cache_is_used(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory({"hybrid": [make_doc("1")]})
        cache = EvidenceCache(ttl_seconds=5)
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings, cache=cache)
        assert engine.cache is cache
        await engine.acquire(CLAIM)
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_empty_rounds_bounded(self, fake_llm, retrieval_factory, settings) -> None:
        retrieval = retrieval_factory()
        engine = EvidenceAcquisitionEngine(retrieval, fake_llm, settings)
        bundle = await engine.acquire(CLAIM)
        assert bundle.documents == []
        assert len(fake_llm.calls_for("search_plan")) == settings.retrieval_max_rounds
        # second round has no untried tool/query pair left
        assert [a.tool for a in bundle.attempts] == [
            SearchTool.HYBRID,
            SearchTool.HYBRID,
            SearchTool.KEYWORD,
        ]
        assert len(retrieval.searches) == 3


class TestExpansion:
    @pytest.mark.asyncio
    async def test_discussion_raw_content_replaces_snippet(
        self, llm_factory, retrieval_factory, make_doc, settings
    ) -> None:
        llm = llm_factory({"raw_content_decision": {"useRawContent": True}})
        top = make_doc("t", kind="discussion", snippet="short")
        retrieval = retrieval_factory({"hybrid": [top, make_doc("2", kind="snapshot")]}, raw_content="Full thread text")
        bundle = await EvidenceAcquisitionEngine(retrieval, llm, settings).acquire(CLAIM)

        assert retrieval.raw_fetches == [top.uri]
        assert bundle.documents[0].id == "t:raw"
        assert bundle.documents[0].snippet == "Full thread text"
        assert [d.uri for d in bundle.documents].count(top.uri) == 1

    @pytest.mark.asyncio
    async def test_discussion_declined(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"raw_content_decision": {"useRawContent": False}})
        retrieval = retrieval_factory({"hybrid": [make_doc("t")]}, raw_content="Full thread text")
        bundle = await EvidenceAcquisitionEngine(retrieval, llm, settings).acquire(CLAIM)
        assert retrieval.raw_fetches == []
        assert bundle.documents[0].id == "t"

    @pytest.mark.asyncio
    async def test_official_detail_added(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory(
            {"official_detail_decision": {"useOfficialDetail": True, "question": "What is the grant cap?"}}
        )
        cited = make_doc("cap", uri="https://docs.example.org/cap", kind="officialDoc")
        retrieval = retrieval_factory(
            {"hybrid": [make_doc("o", uri="https://docs.example.org/grants", kind="officialDoc")]},
            corpus_answer=CorpusAnswer(answer="The cap is 1.5M OP.", citations=[cited]),
        )
        bundle = await EvidenceAcquisitionEngine(retrieval, llm, settings).acquire(CLAIM)

        assert retrieval.corpus_queries == [{"query": "What is the grant cap?", "realtime": True}]
        detail = bundle.documents[0]
        assert detail.id == "official-detail"
        assert detail.uri == "https://docs.example.org/cap"
        assert detail.snippet == "The cap is 1.5M OP."

    @pytest.mark.asyncio
    async def test_expansion_failure_ignored(self, fake_llm, retrieval_factory, make_doc, settings) -> None:
        retrieval = retrieval_factory({"hybrid": [make_doc("t")]}, raw_content="Full thread text")
        bundle = await EvidenceAcquisitionEngine(retrieval, fake_llm, settings).acquire(CLAIM)
        assert [d.id for d in bundle.documents] == ["t"]
        assert isinstance(bundle.documents[0], EvidenceDocument)
