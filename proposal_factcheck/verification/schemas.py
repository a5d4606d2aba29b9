"""Claim verification schemas.

Defines claims extracted from a proposal, the verdicts assigned to them, arithmetic
checks with their results, and the fact-check stage output.

Decisions:
- Three verdict statuses only (SUPPORTED, CONTESTED, UNKNOWN). "No evidence" and
  "low confidence" are valid outcomes expressed as UNKNOWN, never as errors.
- Claims are immutable once created.
- Verdict citations are URIs, never evidence indices.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class ClaimStatus(str, Enum):
    """Outcome of verifying one claim.

    SUPPORTED: Evidence directly affirms the claim.
    CONTESTED: Evidence contradicts the claim or shows material disagreement.
    UNKNOWN: Evidence is missing, irrelevant or inconclusive.
    """

    SUPPORTED = "supported"
    CONTESTED = "contested"
    UNKNOWN = "unknown"


ClaimPriority = Literal["high", "medium", "low"]


class Claim(BaseModel):
    """Verifiable statement extracted from a proposal."""

    text: str = Field(..., min_length=1)
    priority: ClaimPriority = "medium"
    kind: str = Field(default="assumption", description="assumption, arithmetic, or an extractor type")
    evidence_hints: tuple[str, ...] = ()

    model_config = {"frozen": True}


class ClaimVerdict(BaseModel):
    """Verdict for one claim after evidence acquisition and classification."""

    claim: Claim
    status: ClaimStatus = ClaimStatus.UNKNOWN
    citations: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    basis: str = ""
    rounds: int = Field(default=0, ge=0, description="Refinement rounds used")

    @model_validator(mode="before")
    @classmethod
    def _clamp_confidence(cls, data):
        if isinstance(data, dict) and isinstance(data.get("confidence"), (int, float)):
            data = {**data, "confidence": min(1.0, max(0.0, float(data["confidence"])))}
        return data

    @classmethod
    def unknown(cls, claim: Claim, basis: str = "No usable evidence found", rounds: int = 0) -> "ClaimVerdict":
        return cls(claim=claim, status=ClaimStatus.UNKNOWN, confidence=0.0, basis=basis, rounds=rounds)


class ArithmeticCheck(BaseModel):
    """Numeric statement to re-derive independently."""

    title: str
    expression: str
    description: Optional[str] = None
    claimed_value: Optional[float] = None
    tolerance: Optional[float] = Field(default=None, ge=0.0)


class ArithmeticResult(BaseModel):
    """Outcome of an arithmetic check.

    ``final_value`` prefers the oracle value when it is finite, otherwise the local
    value. ``corroborated`` is True when both values exist and agree within tolerance.
    """

    check: ArithmeticCheck
    local_value: Optional[float] = None
    oracle_value: Optional[float] = None
    final_value: Optional[float] = None
    corroborated: Optional[bool] = None
    status: ClaimStatus = ClaimStatus.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    error: Optional[str] = None

    def claim_text(self) -> str:
        title = self.check.title
        if self.error is not None or self.final_value is None:
            return f"Arithmetic: {title} (failed to evaluate)"
        text = f"Arithmetic: {title} => {format_number(self.final_value)}"
        if self.check.claimed_value is not None:
            text += f" (claimed {format_number(self.check.claimed_value)})"
        return text

    def to_verdict(self) -> ClaimVerdict:
        return ClaimVerdict(
            claim=Claim(text=self.claim_text(), priority="high", kind="arithmetic"),
            status=self.status,
            confidence=self.confidence,
            basis=self.error or self.check.expression,
        )


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.10g}"


class FactCheckSummary(BaseModel):
    total: int = 0
    supported: int = 0
    contested: int = 0
    unknown: int = 0
    avg_confidence: Optional[float] = None

    @classmethod
    def from_verdicts(cls, verdicts: list[ClaimVerdict]) -> "FactCheckSummary":
        counts = {status: 0 for status in ClaimStatus}
        for verdict in verdicts:
            counts[verdict.status] += 1
        avg = (
            sum(v.confidence for v in verdicts) / len(verdicts)
            if verdicts else None
        )
        return cls(
            total=len(verdicts),
            supported=counts[ClaimStatus.SUPPORTED],
            contested=counts[ClaimStatus.CONTESTED],
            unknown=counts[ClaimStatus.UNKNOWN],
            avg_confidence=avg,
        )


class FactCheckOutput(BaseModel):
    """Fact-check stage output consumed by later stages and QA."""

    proposal_summary: str = ""
    claims: list[ClaimVerdict] = Field(default_factory=list)
    arithmetic_results: list[ArithmeticResult] = Field(default_factory=list)
    key_evidence: list[str] = Field(default_factory=list)
    primary_sources: list[str] = Field(default_factory=list)
    overall_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    arithmetic_summary: FactCheckSummary = Field(default_factory=FactCheckSummary)
    assumptions_summary: FactCheckSummary = Field(default_factory=FactCheckSummary)

    @property
    def confidence(self) -> Optional[float]:
        return self.overall_confidence
