"""Claim verification: arithmetic re-derivation, classification and refinement."""

from proposal_factcheck.verification.arithmetic import (
    ArithmeticVerifier,
    evaluate,
    nearly_equal,
)
from proposal_factcheck.verification.claim_verifier import ClaimVerifier
from proposal_factcheck.verification.classifier import ClaimClassifier
from proposal_factcheck.verification.fact_checker import FactChecker
from proposal_factcheck.verification.schemas import (
    ArithmeticCheck,
    ArithmeticResult,
    Claim,
    ClaimStatus,
    ClaimVerdict,
    FactCheckOutput,
    FactCheckSummary,
)

__all__ = [
    "ArithmeticCheck",
    "ArithmeticResult",
    "ArithmeticVerifier",
    "Claim",
    "ClaimClassifier",
    "ClaimStatus",
    "ClaimVerdict",
    "ClaimVerifier",
    "FactCheckOutput",
    "FactCheckSummary",
    "FactChecker",
    "evaluate",
    "nearly_equal",
]
