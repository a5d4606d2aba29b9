"""Claim verifier running the evidence/classification refinement loop.

Verification flow per claim, for up to ``fact_max_iterations`` rounds:
1. Acquire evidence (EvidenceAcquisitionEngine), passing the attempts made so far
2. Skip classification when nothing was retrieved; abandon after an empty streak
3. Classify against inline payload documents plus retrieved evidence (ClaimClassifier)
4. Stop as soon as the verdict is sufficient (decided, cited, confident)

Claims are verified concurrently through an aiometer pool bounded by
``retrieval_concurrency``; rounds within one claim are sequential. Results follow
input order regardless of completion order.

Usage:
    verifier = ClaimVerifier(engine, classifier, settings)
    verdicts = await verifier.verify_claims(claims, seen_uris=set())
"""

import functools
from typing import Any, Optional, Sequence

import aiometer
import structlog

from proposal_factcheck.audit import AuditSink
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError, SchemaValidationError
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine
from proposal_factcheck.retrieval.schemas import EvidenceBundle, EvidenceDocument, RetrievalAttempt
from proposal_factcheck.verification.classifier import ClaimClassifier
from proposal_factcheck.verification.schemas import Claim, ClaimStatus, ClaimVerdict

MAX_CONTEXT_DOCUMENTS = 2


def empty_streak_limit(remaining_rounds: int) -> int:
    """Consecutive empty rounds tolerated before abandoning the search."""
    return 3 if remaining_rounds > 2 else 2


def _trace_round(
    audit: Optional[AuditSink],
    claim: Claim,
    round_number: int,
    bundle: EvidenceBundle,
    verdict: Optional[ClaimVerdict],
    note: Optional[str],
) -> None:
    if audit is None:
        return
    audit.append_step(
        "tool_call",
        f"Verification round {round_number}: {claim.text[:80]}",
        input={
            "claim": claim.text,
            "round": round_number,
            "plans": [
                {"tool": a.tool.value, "query": a.query, "results": a.result_count}
                for a in bundle.attempts
            ],
            "from_cache": bundle.from_cache,
        },
        output={
            "documents": len(bundle.documents),
            "status": verdict.status.value if verdict is not None else None,
            "confidence": verdict.confidence if verdict is not None else None,
            "note": note,
        },
        references=verdict.citations if verdict is not None else bundle.uris,
    )


class ClaimVerifier:
    """Verify claims with bounded refinement and bounded concurrency.

    Per-claim failures never abort the batch: a round whose classification fails is
    simply lost, and a claim with no usable verdict ends as UNKNOWN.
    """

    def __init__(
        self,
        engine: EvidenceAcquisitionEngine,
        classifier: ClaimClassifier,
        settings: Settings,
    ) -> None:
        """Initialize ClaimVerifier.

        Args:
            engine: Evidence acquisition engine.
            classifier: Claim classifier.
            settings: Run settings (iteration bound, sufficiency thresholds, concurrency).
        """
        self.engine = engine
        self.classifier = classifier
        self.max_rounds = settings.fact_max_iterations
        self.min_citations = settings.fact_min_citations
        self.min_confidence = settings.fact_min_confidence
        self.concurrency = settings.retrieval_concurrency
        self.stats: dict[str, int] = {
            "verified": 0,
            "supported": 0,
            "contested": 0,
            "unknown": 0,
            "abandoned": 0,
            "classification_failures": 0,
        }
        self._logger = structlog.get_logger().bind(component="ClaimVerifier")

    def is_sufficient(self, verdict: ClaimVerdict) -> bool:
        return (
            verdict.status != ClaimStatus.UNKNOWN
            and len(verdict.citations) >= self.min_citations
            and verdict.confidence >= self.min_confidence
        )

    async def verify_claim(
        self,
        claim: Claim,
        seen_uris: Optional[set[str]] = None,
        context_documents: Sequence[EvidenceDocument] = (),
        audit: Optional[AuditSink] = None,
    ) -> ClaimVerdict:
        """Run the refinement loop for one claim.

        Args:
            claim: Claim to verify.
            seen_uris: Run-scoped set of URIs already consumed. Updated with this
                claim's citations once it completes.
            context_documents: Inline payload documents; the first two are shown to
                the classifier ahead of retrieved evidence.
            audit: Optional audit sink; one step is appended per round.

        Returns:
            The last successful verdict, or UNKNOWN with confidence 0.
        """
        attempts: list[RetrievalAttempt] = []
        verdict: Optional[ClaimVerdict] = None
        empty_streak = 0
        rounds = 0

        for round_index in range(self.max_rounds):
            rounds = round_index + 1
            bundle = await self.engine.acquire(
                claim.text,
                claim.evidence_hints,
                seen_uris=seen_uris,
                prior_attempts=attempts or None,
            )
            attempts.extend(bundle.attempts)

            if not bundle.documents:
                empty_streak += 1
                _trace_round(audit, claim, rounds, bundle, None, "no evidence")
                if empty_streak >= empty_streak_limit(self.max_rounds - rounds):
                    self.stats["abandoned"] += 1
                    self._logger.info(
                        "claim_search_abandoned",
                        claim=claim.text[:60],
                        empty_rounds=empty_streak,
                    )
                    break
                continue
            empty_streak = 0

            evidence = [*context_documents[:MAX_CONTEXT_DOCUMENTS], *bundle.documents]
            try:
                verdict = await self.classifier.classify(claim, evidence, bundle.answer)
            except (SchemaValidationError, GenerationError) as e:
                self.stats["classification_failures"] += 1
                self._logger.warning(
                    "classification_failed",
                    claim=claim.text[:60],
                    round=rounds,
                    error=str(e),
                )
                _trace_round(audit, claim, rounds, bundle, None, "classification failed")
                continue

            _trace_round(audit, claim, rounds, bundle, verdict, None)
            if self.is_sufficient(verdict):
                break

        if verdict is None:
            final = ClaimVerdict.unknown(claim, rounds=rounds)
        else:
            final = verdict.model_copy(update={"rounds": rounds})

        if seen_uris is not None:
            seen_uris.update(final.citations)

        self.stats["verified"] += 1
        self.stats[final.status.value] += 1
        self._logger.info(
            "claim_verified",
            claim=claim.text[:60],
            status=final.status.value,
            confidence=round(final.confidence, 3),
            citations=len(final.citations),
            rounds=rounds,
        )
        return final

    async def verify_claims(
        self,
        claims: Sequence[Claim],
        seen_uris: Optional[set[str]] = None,
        context_documents: Sequence[EvidenceDocument] = (),
        audit: Optional[AuditSink] = None,
    ) -> list[ClaimVerdict]:
        """Verify many claims concurrently; results follow input order."""
        if not claims:
            return []

        self._logger.info(
            "claim_batch_started",
            claims=len(claims),
            concurrency=self.concurrency,
        )
        jobs = [
            functools.partial(self.verify_claim, claim, seen_uris, context_documents, audit)
            for claim in claims
        ]
        verdicts = await aiometer.run_all(jobs, max_at_once=self.concurrency)
        return list(verdicts)

    def get_stats(self) -> dict[str, Any]:
        return dict(self.stats)
