"""Fact-check stage: extract verifiable claims from a proposal and verify them.

Flow:
1. Inline payload text becomes pseudo-documents
2. A seed query builds a background corpus through the evidence engine
3. Assumptions (claims with priority, type and evidence hints) are extracted
4. Arithmetic checks are extracted and verified independently
5. Assumptions are verified through the ClaimVerifier refinement loop
6. Verdicts are summarized into a FactCheckOutput

Extraction failures degrade to empty lists and are recorded in the audit trail;
the stage always produces an output.
"""

import functools
from typing import Optional, Sequence

import aiometer
import structlog

from proposal_factcheck.audit import AuditSink
from proposal_factcheck.config.prompts.verification_prompts import (
    ARITHMETIC_EXTRACTION_SYSTEM_PROMPT,
    ARITHMETIC_EXTRACTION_USER_PROMPT,
    ASSUMPTION_EXTRACTION_SYSTEM_PROMPT,
    ASSUMPTION_EXTRACTION_USER_PROMPT,
    SEED_QUERY_SYSTEM_PROMPT,
)
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError, SchemaValidationError
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.llm.structured import (
    ArraySchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)
from proposal_factcheck.proposal import Proposal
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine
from proposal_factcheck.retrieval.schemas import EvidenceDocument
from proposal_factcheck.verification.arithmetic import ArithmeticVerifier
from proposal_factcheck.verification.claim_verifier import ClaimVerifier
from proposal_factcheck.verification.schemas import (
    ArithmeticCheck,
    ArithmeticResult,
    Claim,
    ClaimVerdict,
    FactCheckOutput,
    FactCheckSummary,
)

MAX_ASSUMPTIONS = 12
MAX_ARITHMETIC_CHECKS = 10
CORPUS_DIGEST_DOCS = 8
DEFAULT_CLAIM_CONFIDENCE = 0.5

SEED_QUERY_SCHEMA = ObjectSchema(properties={"query": StringSchema()})

ASSUMPTIONS_SCHEMA = ObjectSchema(
    properties={
        "proposalSummary": StringSchema(),
        "assumptions": ArraySchema(
            ObjectSchema(
                properties={
                    "claim": StringSchema(),
                    "priority": StringSchema(enum=("high", "medium", "low")),
                    "type": StringSchema(),
                    "evidenceHints": ArraySchema(StringSchema()),
                },
                required=("claim", "priority"),
            )
        ),
        "primarySources": ArraySchema(StringSchema()),
    },
    required=("assumptions",),
)

ARITHMETIC_SCHEMA = ObjectSchema(
    properties={
        "checks": ArraySchema(
            ObjectSchema(
                properties={
                    "title": StringSchema(),
                    "description": StringSchema(),
                    "expression": StringSchema(),
                    "claimedValue": NumberSchema(),
                    "tolerance": NumberSchema(),
                },
                required=("title", "expression"),
            )
        ),
    },
)

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def overall_confidence(verdicts: Sequence[ClaimVerdict]) -> float:
    """Mean per-claim confidence; an empty batch is neutral (0.5)."""
    if not verdicts:
        return DEFAULT_CLAIM_CONFIDENCE
    values = [
        v.confidence if v.confidence is not None else DEFAULT_CLAIM_CONFIDENCE
        for v in verdicts
    ]
    return sum(values) / len(values)


class FactChecker:
    """Fact-check stage built on the evidence engine, claim verifier and arithmetic verifier."""

    def __init__(
        self,
        llm: ReasoningClient,
        engine: EvidenceAcquisitionEngine,
        verifier: ClaimVerifier,
        settings: Settings,
        arithmetic: Optional[ArithmeticVerifier] = None,
    ) -> None:
        self._llm = llm
        self._engine = engine
        self._verifier = verifier
        self._concurrency = settings.retrieval_concurrency
        self._arithmetic = (
            arithmetic
            if arithmetic is not None
            else ArithmeticVerifier(llm, use_oracle=settings.arithmetic_oracle_enabled)
        )
        self._logger = structlog.get_logger().bind(component="FactChecker")

    async def check(
        self,
        proposal: Proposal,
        audit: Optional[AuditSink] = None,
        seen_uris: Optional[set[str]] = None,
    ) -> FactCheckOutput:
        """Run the full fact-check for ``proposal``.

        Args:
            proposal: Proposal under evaluation.
            audit: Optional audit sink for seed and extraction steps.
            seen_uris: Run-scoped consumed-URI set; a fresh one is used if omitted.

        Returns:
            FactCheckOutput (never raises for collaborator failures).
        """
        seen = seen_uris if seen_uris is not None else set()
        payload_docs = proposal.payload_documents()

        corpus = await self._seed_corpus(proposal, payload_docs, audit)
        summary, claims, primary_sources = await self._extract_assumptions(proposal, corpus, audit)
        checks = await self._extract_arithmetic(proposal, audit)

        arithmetic_results = await self._verify_arithmetic(checks, audit)
        verdicts = await self._verifier.verify_claims(claims, seen, payload_docs, audit)

        arithmetic_verdicts = [r.to_verdict() for r in arithmetic_results]
        all_verdicts = [*verdicts, *arithmetic_verdicts]
        key_evidence: list[str] = []
        for verdict in all_verdicts:
            for uri in verdict.citations:
                if uri not in key_evidence:
                    key_evidence.append(uri)

        output = FactCheckOutput(
            proposal_summary=summary,
            claims=all_verdicts,
            arithmetic_results=arithmetic_results,
            key_evidence=key_evidence,
            primary_sources=primary_sources,
            overall_confidence=overall_confidence(all_verdicts),
            arithmetic_summary=FactCheckSummary.from_verdicts(arithmetic_verdicts),
            assumptions_summary=FactCheckSummary.from_verdicts(verdicts),
        )
        self._logger.info(
            "fact_check_complete",
            proposal_id=proposal.id,
            claims=len(verdicts),
            arithmetic=len(arithmetic_results),
            overall_confidence=round(output.overall_confidence, 3),
        )
        return output

    # ── Seed corpus ─────────────────────────────────────────────────

    async def _seed_corpus(
        self,
        proposal: Proposal,
        payload_docs: list[EvidenceDocument],
        audit: Optional[AuditSink],
    ) -> list[EvidenceDocument]:
        fallback = proposal.title.strip() or f"proposal {proposal.id}"
        try:
            raw = await self._llm.extract_structured(
                SEED_QUERY_SYSTEM_PROMPT,
                proposal.digest(),
                SEED_QUERY_SCHEMA,
                schema_name="seed_query",
                max_output_tokens=200,
                difficulty="easy",
            )
            seed_query = raw["query"].strip() or fallback
        except (SchemaValidationError, GenerationError) as e:
            self._logger.warning("seed_query_failed", error=str(e))
            seed_query = fallback

        bundle = await self._engine.acquire(seed_query, ("proposal background",))
        if audit is not None:
            audit.append_step(
                "analysis",
                "Built seed corpus",
                input={"seed_query": seed_query},
                output={"documents": len(bundle.documents), "attempts": len(bundle.attempts)},
                references=bundle.uris,
            )
        return [*payload_docs, *bundle.documents]

    # ── Extraction ──────────────────────────────────────────────────

    async def _extract_assumptions(
        self,
        proposal: Proposal,
        corpus: list[EvidenceDocument],
        audit: Optional[AuditSink],
    ) -> tuple[str, list[Claim], list[str]]:
        digest = "\n".join(
            f"[{i}] {d.title or d.id} ({d.source_kind}): {(d.snippet or '')[:300]}"
            for i, d in enumerate(corpus[:CORPUS_DIGEST_DOCS], start=1)
        ) or "(none)"
        try:
            raw = await self._llm.extract_structured(
                ASSUMPTION_EXTRACTION_SYSTEM_PROMPT,
                ASSUMPTION_EXTRACTION_USER_PROMPT.format(proposal=proposal.digest(), corpus=digest),
                ASSUMPTIONS_SCHEMA,
                schema_name="assumptions",
                max_output_tokens=3000,
                difficulty="hard",
            )
        except (SchemaValidationError, GenerationError) as e:
            self._logger.warning("assumption_extraction_failed", error=str(e))
            if audit is not None:
                audit.append_step("analysis", "Assumption extraction failed", output={"error": str(e)})
            return "", [], []

        claims: list[Claim] = []
        for item in raw["assumptions"]:
            text = item["claim"].strip()
            if not text:
                continue
            claims.append(
                Claim(
                    text=text,
                    priority=item["priority"],
                    kind=(item.get("type") or "assumption").strip() or "assumption",
                    evidence_hints=tuple(h for h in item.get("evidenceHints", [])[:3] if h.strip()),
                )
            )
        claims.sort(key=lambda c: _PRIORITY_ORDER[c.priority])
        claims = claims[:MAX_ASSUMPTIONS]

        if audit is not None:
            audit.append_step(
                "analysis",
                "Extracted assumptions",
                output={"count": len(claims), "claims": [c.text for c in claims]},
            )
        return raw.get("proposalSummary", ""), claims, list(raw.get("primarySources", []))

    async def _extract_arithmetic(
        self, proposal: Proposal, audit: Optional[AuditSink]
    ) -> list[ArithmeticCheck]:
        try:
            raw = await self._llm.extract_structured(
                ARITHMETIC_EXTRACTION_SYSTEM_PROMPT,
                ARITHMETIC_EXTRACTION_USER_PROMPT.format(proposal=proposal.digest()),
                ARITHMETIC_SCHEMA,
                schema_name="arithmetic_checks",
                max_output_tokens=1500,
            )
        except (SchemaValidationError, GenerationError) as e:
            self._logger.warning("arithmetic_extraction_failed", error=str(e))
            if audit is not None:
                audit.append_step("analysis", "Arithmetic extraction failed", output={"error": str(e)})
            return []

        checks = [
            ArithmeticCheck(
                title=item["title"],
                expression=item["expression"],
                description=item.get("description"),
                claimed_value=item.get("claimedValue"),
                tolerance=abs(item["tolerance"]) if item.get("tolerance") is not None else None,
            )
            for item in raw["checks"][:MAX_ARITHMETIC_CHECKS]
            if item["expression"].strip()
        ]
        if audit is not None and checks:
            audit.append_step(
                "analysis",
                "Extracted arithmetic checks",
                output=[c.model_dump() for c in checks],
            )
        return checks

    async def _verify_arithmetic(
        self, checks: list[ArithmeticCheck], audit: Optional[AuditSink]
    ) -> list[ArithmeticResult]:
        if not checks:
            return []
        jobs = [functools.partial(self._arithmetic.verify, check) for check in checks]
        results = list(await aiometer.run_all(jobs, max_at_once=self._concurrency))
        if audit is not None:
            for result in results:
                audit.append_step(
                    "analysis",
                    f"Arithmetic check: {result.check.title}",
                    input={
                        "expression": result.check.expression,
                        "claimed_value": result.check.claimed_value,
                    },
                    output={
                        "local_value": result.local_value,
                        "oracle_value": result.oracle_value,
                        "final_value": result.final_value,
                        "status": result.status.value,
                        "confidence": result.confidence,
                        "error": result.error,
                    },
                )
        return results
