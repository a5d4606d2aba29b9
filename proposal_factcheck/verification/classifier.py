"""Claim Classifier: assigns supported / contested / unknown to one claim.

The evidence is presented to the reasoning collaborator as a numbered list (1-based,
at most ``evidence_limit`` items). The collaborator cites items by number; numbers
are mapped back to URIs here so a verdict can only ever cite documents that were
actually presented. Out-of-range or non-integral numbers and documents without a
URI are dropped.

Collaborator failures propagate to the caller, which decides whether the round is
lost (see ClaimVerifier).
"""

from typing import Any, Optional, Sequence

import structlog

from proposal_factcheck.config.prompts.verification_prompts import (
    CLAIM_CLASSIFIER_SYSTEM_PROMPT,
    CLAIM_CLASSIFIER_USER_PROMPT,
)
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.llm.structured import (
    ArraySchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)
from proposal_factcheck.retrieval.schemas import EvidenceDocument
from proposal_factcheck.verification.schemas import Claim, ClaimStatus, ClaimVerdict

CLASSIFICATION_SCHEMA = ObjectSchema(
    properties={
        "status": StringSchema(enum=tuple(s.value for s in ClaimStatus)),
        "basis": StringSchema(),
        "citations": ArraySchema(NumberSchema()),
        "confidence": NumberSchema(),
    },
)

SNIPPET_CHARS = 600


def map_citations(indices: Sequence[Any], presented: Sequence[EvidenceDocument]) -> list[str]:
    """Map 1-based evidence numbers to URIs, dropping anything uncitable."""
    uris: list[str] = []
    for index in indices:
        if isinstance(index, bool) or not isinstance(index, (int, float)):
            continue
        if not float(index).is_integer():
            continue
        position = int(index) - 1
        if position < 0 or position >= len(presented):
            continue
        uri = presented[position].uri
        if uri and uri not in uris:
            uris.append(uri)
    return uris


def render_evidence(presented: Sequence[EvidenceDocument]) -> str:
    if not presented:
        return "(no evidence)"
    lines = []
    for number, doc in enumerate(presented, start=1):
        header = f"[{number}] {doc.title or doc.id} ({doc.source_kind})"
        if doc.uri:
            header += f" <{doc.uri}>"
        lines.append(f"{header}\n{(doc.snippet or '').strip()[:SNIPPET_CHARS]}")
    return "\n\n".join(lines)


class ClaimClassifier:
    """Classify a claim against presented evidence via the reasoning collaborator."""

    def __init__(self, llm: ReasoningClient, evidence_limit: int = 8) -> None:
        self._llm = llm
        self._evidence_limit = evidence_limit
        self.documents_evaluated = 0
        self._logger = structlog.get_logger().bind(component="ClaimClassifier")

    async def classify(
        self,
        claim: Claim,
        evidence: Sequence[EvidenceDocument],
        hint_answer: Optional[str] = None,
    ) -> ClaimVerdict:
        """Classify ``claim``.

        Args:
            claim: Claim to classify.
            evidence: Candidate documents, most relevant first.
            hint_answer: Optional synthesized corpus answer shown as context.

        Returns:
            ClaimVerdict whose citations are URIs of presented documents.

        Raises:
            SchemaValidationError: Collaborator output was malformed after retries.
            GenerationError: Collaborator call failed after retries.
        """
        presented = list(evidence)[: self._evidence_limit]
        self.documents_evaluated += len(presented)
        hint_block = f"CORPUS ANSWER (hint, not evidence):\n{hint_answer.strip()}\n\n" if hint_answer else ""
        raw = await self._llm.extract_structured(
            CLAIM_CLASSIFIER_SYSTEM_PROMPT,
            CLAIM_CLASSIFIER_USER_PROMPT.format(
                priority=claim.priority,
                claim=claim.text,
                hint_block=hint_block,
                evidence=render_evidence(presented),
            ),
            CLASSIFICATION_SCHEMA,
            schema_name="claim_verdict",
            max_output_tokens=1200,
        )

        citations = map_citations(raw["citations"], presented)
        verdict = ClaimVerdict(
            claim=claim,
            status=ClaimStatus(raw["status"]),
            citations=citations,
            confidence=raw["confidence"],
            basis=raw["basis"],
        )
        dropped = len(raw["citations"]) - len(citations)
        self._logger.info(
            "claim_classified",
            claim=claim.text[:60],
            status=verdict.status.value,
            citations=len(citations),
            dropped_citations=dropped,
            confidence=round(verdict.confidence, 3),
        )
        return verdict

    def usage(self) -> dict[str, int]:
        return {"documents_evaluated": self.documents_evaluated}
