"""Tests for ClaimClassifier citation mapping and error propagation."""

import pytest

from proposal_factcheck.exceptions import GenerationError
from proposal_factcheck.verification.classifier import ClaimClassifier, map_citations
from proposal_factcheck.verification.schemas import Claim, ClaimStatus


class TestMapCitations:
    def test_one_based_indices_mapped(self, make_doc) -> None:
        docs = [make_doc("a"), make_doc("b"), make_doc("c")]
        assert map_citations([3, 1], docs) == [docs[2].uri, docs[0].uri]

    def test_invalid_indices_dropped(self, make_doc) -> None:
        docs = [make_doc("a"), make_doc("b")]
        assert map_citations([0, 3, 1.5, -1, True, "1"], docs) == []

    def test_documents_without_uri_dropped(self, make_doc) -> None:
        docs = [make_doc("a", uri=None), make_doc("b")]
        assert map_citations([1, 2], docs) == [docs[1].uri]

    def test_duplicates_collapsed(self, make_doc) -> None:
        docs = [make_doc("a")]
        assert map_citations([1, 1.0], docs) == [docs[0].uri]


class TestClaimClassifier:
    @pytest.mark.asyncio
    async def test_classify_maps_citations(self, llm_factory, make_doc) -> None:
        llm = llm_factory(
            {"claim_verdict": {"status": "supported", "basis": "Doc 2 states it", "citations": [2, 9], "confidence": 0.8}}
        )
        docs = [make_doc("a"), make_doc("b")]
        verdict = await ClaimClassifier(llm).classify(Claim(text="Budget is 1.2M"), docs)
        assert verdict.status == ClaimStatus.SUPPORTED
        assert verdict.citations == [docs[1].uri]
        assert verdict.confidence == 0.8

    @pytest.mark.asyncio
    async def test_only_presented_documents_citable(self, llm_factory, make_doc) -> None:
        llm = llm_factory(
            {"claim_verdict": {"status": "supported", "basis": "b", "citations": [3], "confidence": 0.9}}
        )
        docs = [make_doc(str(i)) for i in range(5)]
        verdict = await ClaimClassifier(llm, evidence_limit=2).classify(Claim(text="c"), docs)
        assert verdict.citations == []
        assert "[3]" not in llm.calls[0]["user_prompt"]

    @pytest.mark.asyncio
    async def test_counts_presented_documents(self, llm_factory, make_doc) -> None:
        llm = llm_factory(
            {"claim_verdict": {"status": "unknown", "basis": "b", "citations": [], "confidence": 0.2}}
        )
        classifier = ClaimClassifier(llm, evidence_limit=3)
        await classifier.classify(Claim(text="c"), [make_doc(str(i)) for i in range(5)])
        await classifier.classify(Claim(text="d"), [make_doc("x")])
        assert classifier.usage() == {"documents_evaluated": 4}

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, llm_factory, make_doc) -> None:
        llm = llm_factory(
            {"claim_verdict": {"status": "contested", "basis": "b", "citations": [], "confidence": 1.4}}
        )
        verdict = await ClaimClassifier(llm).classify(Claim(text="c"), [make_doc("a")])
        assert verdict.confidence == 1.0

    @pytest.mark.asyncio
    async def test_hint_answer_in_prompt(self, llm_factory, make_doc) -> None:
        llm = llm_factory(
            {"claim_verdict": {"status": "unknown", "basis": "b", "citations": [], "confidence": 0.2}}
        )
        await ClaimClassifier(llm).classify(Claim(text="c"), [make_doc("a")], hint_answer="Quorum is 30%")
        assert "Quorum is 30%" in llm.calls[0]["user_prompt"]

    @pytest.mark.asyncio
    async def test_failure_propagates(self, fake_llm, make_doc) -> None:
        with pytest.raises(GenerationError):
            await ClaimClassifier(fake_llm).classify(Claim(text="c"), [make_doc("a")])
