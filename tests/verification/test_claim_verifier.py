"""Tests for the ClaimVerifier refinement loop.

Tests cover:
- Sufficiency and early stop
- Iteration bound
- Zero-evidence and empty-streak abandonment
- Lost rounds on classification failure
- Batch order and seen-URI bookkeeping
- The budget scenario with payload context
"""

import pytest

from proposal_factcheck.audit import AuditTrail
from proposal_factcheck.exceptions import GenerationError
from proposal_factcheck.proposal import PayloadItem, Proposal
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine
from proposal_factcheck.verification.claim_verifier import ClaimVerifier, empty_streak_limit
from proposal_factcheck.verification.classifier import ClaimClassifier
from proposal_factcheck.verification.schemas import Claim, ClaimStatus

SUPPORTED = {"status": "supported", "basis": "Doc 1 confirms", "citations": [1], "confidence": 0.85}
UNKNOWN = {"status": "unknown", "basis": "Inconclusive", "citations": [], "confidence": 0.3}


def _verifier(llm, retrieval, settings) -> ClaimVerifier:
    engine = EvidenceAcquisitionEngine(retrieval, llm, settings)
    return ClaimVerifier(engine, ClaimClassifier(llm), settings)


class TestEmptyStreakLimit:
    def test_values(self) -> None:
        assert empty_streak_limit(5) == 3
        assert empty_streak_limit(3) == 3
        assert empty_streak_limit(2) == 2
        assert empty_streak_limit(0) == 2


class TestVerifyClaim:
    @pytest.mark.asyncio
    async def test_sufficient_verdict_stops_early(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"claim_verdict": SUPPORTED})
        retrieval = retrieval_factory({"hybrid": [make_doc("1")]})
        verdict = await _verifier(llm, retrieval, settings).verify_claim(Claim(text="Budget is 1.2M"))
        assert verdict.status == ClaimStatus.SUPPORTED
        assert verdict.rounds == 1
        assert len(llm.calls_for("claim_verdict")) == 1

    @pytest.mark.asyncio
    async def test_iteration_bound(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"claim_verdict": UNKNOWN})
        retrieval = retrieval_factory({"hybrid": [make_doc("1")], "keyword": [make_doc("2")]})
        verifier = _verifier(llm, retrieval, settings)
        verdict = await verifier.verify_claim(Claim(text="Budget is 1.2M"))
        assert verdict.rounds == settings.fact_max_iterations
        assert len(llm.calls_for("claim_verdict")) == settings.fact_max_iterations
        assert verdict.status == ClaimStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_uncited_verdict_is_not_sufficient(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        uncited = {**SUPPORTED, "citations": []}
        llm = llm_factory({"claim_verdict": [uncited, SUPPORTED]})
        retrieval = retrieval_factory({"hybrid": [make_doc("1")], "keyword": [make_doc("2")]})
        verdict = await _verifier(llm, retrieval, settings).verify_claim(Claim(text="Budget is 1.2M"))
        assert verdict.rounds == 2
        assert verdict.citations

    @pytest.mark.asyncio
    async def test_zero_evidence_is_unknown(self, llm_factory, retrieval_factory, settings) -> None:
        llm = llm_factory({"claim_verdict": SUPPORTED})
        verifier = _verifier(llm, retrieval_factory(), settings)
        verdict = await verifier.verify_claim(Claim(text="Nobody ever wrote about this"))
        assert verdict.status == ClaimStatus.UNKNOWN
        assert verdict.citations == []
        assert verdict.confidence == 0.0
        assert llm.calls_for("claim_verdict") == []
        assert verifier.get_stats()["abandoned"] == 1

    @pytest.mark.asyncio
    async def test_rounds_recorded_in_audit(self, llm_factory, retrieval_factory, settings) -> None:
        audit = AuditTrail(proposal_id="42")
        verifier = _verifier(llm_factory(), retrieval_factory(), settings)
        await verifier.verify_claim(Claim(text="Nobody ever wrote about this"), audit=audit)

        steps = [s for s in audit.steps if s.type == "tool_call"]
        assert [s.input["round"] for s in steps] == [1, 2]
        assert all(s.output["note"] == "no evidence" for s in steps)
        first_round = [(p["tool"], p["query"]) for p in steps[0].input["plans"]]
        assert first_round[0] == ("hybrid", "Nobody ever wrote about this")
        # every tool already failed on this query, so nothing is searched again
        assert steps[1].input["plans"] == []

    @pytest.mark.asyncio
    async def test_verdict_round_recorded_with_references(
        self, llm_factory, retrieval_factory, make_doc, settings
    ) -> None:
        audit = AuditTrail(proposal_id="42")
        llm = llm_factory({"claim_verdict": SUPPORTED})
        doc = make_doc("1")
        verifier = _verifier(llm, retrieval_factory({"hybrid": [doc]}), settings)
        await verifier.verify_claims([Claim(text="Budget is 1.2M")], audit=audit)

        (step,) = audit.steps
        assert step.output["status"] == "supported"
        assert step.output["confidence"] == 0.85
        assert [r.uri for r in step.references] == [doc.uri]

    @pytest.mark.asyncio
    async def test_classification_failure_loses_round(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"claim_verdict": [GenerationError("overloaded"), SUPPORTED]})
        retrieval = retrieval_factory({"hybrid": [make_doc("1")], "keyword": [make_doc("2")]})
        verifier = _verifier(llm, retrieval, settings)
        verdict = await verifier.verify_claim(Claim(text="Budget is 1.2M"))
        assert verdict.status == ClaimStatus.SUPPORTED
        assert verdict.rounds == 2
        assert verifier.get_stats()["classification_failures"] == 1

    @pytest.mark.asyncio
    async def test_all_rounds_failing_is_unknown(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"claim_verdict": GenerationError("down")})
        retrieval = retrieval_factory({"hybrid": [make_doc("1")]})
        verdict = await _verifier(llm, retrieval, settings).verify_claim(Claim(text="c"))
        assert verdict.status == ClaimStatus.UNKNOWN
        assert verdict.confidence == 0.0

    @pytest.mark.asyncio
    async def test_seen_uris_updated_with_citations(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        llm = llm_factory({"claim_verdict": SUPPORTED})
        doc = make_doc("1")
        retrieval = retrieval_factory({"hybrid": [doc]})
        seen: set[str] = set()
        await _verifier(llm, retrieval, settings).verify_claim(Claim(text="c"), seen_uris=seen)
        assert seen == {doc.uri}

    @pytest.mark.asyncio
    async def test_budget_scenario(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        proposal = Proposal(
            id="42",
            title="Season 6 grants",
            payload=[PayloadItem(type="text", uri="https://gov.example.org/p/42", data="$1,200,000 allocated")],
        )
        corroborating = make_doc("budget", snippet="The council approved a budget of 1.2M for Season 6.")
        llm = llm_factory(
            {
                "claim_verdict": lambda prompt: {
                    "status": "supported",
                    "basis": "Payload and forum post agree",
                    "citations": [1, 2],
                    "confidence": 0.85,
                }
                if "$1,200,000 allocated" in prompt
                else UNKNOWN
            }
        )
        retrieval = retrieval_factory({"hybrid": [corroborating]})
        verdict = await _verifier(llm, retrieval, settings).verify_claim(
            Claim(text="Budget is $1.2M", priority="high"),
            context_documents=proposal.payload_documents(),
        )
        assert verdict.status == ClaimStatus.SUPPORTED
        assert len(verdict.citations) >= 1
        assert corroborating.uri in verdict.citations
        assert verdict.confidence >= settings.fact_min_confidence


class TestVerifyClaims:
    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, llm_factory, retrieval_factory, make_doc, settings) -> None:
        def classify(prompt: str) -> dict:
            confidence = 0.9 if "claim-b" in prompt else 0.7
            return {**SUPPORTED, "confidence": confidence}

        llm = llm_factory({"claim_verdict": classify})
        retrieval = retrieval_factory({"hybrid": lambda q, t, f: [make_doc(q.replace(" ", "-"))]})
        claims = [Claim(text=f"claim-{c}") for c in "abcde"]
        verdicts = await _verifier(llm, retrieval, settings).verify_claims(claims, seen_uris=set())
        assert [v.claim.text for v in verdicts] == [c.text for c in claims]
        assert verdicts[1].confidence == 0.9

    @pytest.mark.asyncio
    async def test_empty_batch(self, fake_llm, fake_retrieval, settings) -> None:
        assert await _verifier(fake_llm, fake_retrieval, settings).verify_claims([]) == []
