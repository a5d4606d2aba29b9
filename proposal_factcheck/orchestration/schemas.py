"""Stage sequencing schemas.

Decisions:
- Five stages in fixed order (planning, fact_check, reasoning, challenge, adjudication)
- A StageResult is replaced wholesale when a stage re-runs, never patched
- Stages may emit their own confidence; otherwise the sequencer scores it
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from proposal_factcheck.metrics import RunMetrics


class StageName(str, Enum):
    PLANNING = "planning"
    FACT_CHECK = "fact_check"
    REASONING = "reasoning"
    CHALLENGE = "challenge"
    ADJUDICATION = "adjudication"


STAGE_ORDER = (
    StageName.PLANNING,
    StageName.FACT_CHECK,
    StageName.REASONING,
    StageName.CHALLENGE,
    StageName.ADJUDICATION,
)

Recommendation = Literal["for", "against", "abstain", "defer"]


class PlanningOutput(BaseModel):
    objectives: list[str] = Field(default_factory=list)
    tasks: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ReasoningOutput(BaseModel):
    argument: str = ""
    premises: list[str] = Field(default_factory=list)
    uncertainties: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list, description="URIs consulted for premises")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ChallengeOutput(BaseModel):
    counterpoints: list[str] = Field(default_factory=list)
    failure_modes: list[str] = Field(default_factory=list)
    evidence: list[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class AdjudicationOutput(BaseModel):
    recommendation: Recommendation = "defer"
    rationale: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class StageResult(BaseModel):
    """Final output of one stage after QA gating and scoring."""

    stage: StageName
    output: Any = None
    confidence: Optional[float] = None
    runs: int = 0
    qa_satisfied: Optional[bool] = Field(
        default=None, description="Last QA verdict; None when QA was unavailable"
    )
    degraded: bool = Field(default=False, description="True when a default output was used")


class EvaluationReport(BaseModel):
    """Result of a full sequencer run."""

    proposal_id: str
    stages: dict[str, StageResult] = Field(default_factory=dict)
    recommendation: Optional[Recommendation] = None
    metrics: Optional[RunMetrics] = None
    completed_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def stage(self, name: StageName) -> Optional[StageResult]:
        return self.stages.get(StageName(name).value)
