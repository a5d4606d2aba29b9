"""Stage sequencing: planning, fact check, reasoning, challenge and adjudication."""

from proposal_factcheck.orchestration.context import RunContext
from proposal_factcheck.orchestration.schemas import (
    STAGE_ORDER,
    AdjudicationOutput,
    ChallengeOutput,
    EvaluationReport,
    PlanningOutput,
    ReasoningOutput,
    StageName,
    StageResult,
)
from proposal_factcheck.orchestration.sequencer import (
    StageSequencer,
    build_sequencer,
    default_stages,
)
from proposal_factcheck.orchestration.stages import QARubric, Stage

__all__ = [
    "STAGE_ORDER",
    "AdjudicationOutput",
    "ChallengeOutput",
    "EvaluationReport",
    "PlanningOutput",
    "QARubric",
    "ReasoningOutput",
    "RunContext",
    "Stage",
    "StageName",
    "StageResult",
    "StageSequencer",
    "build_sequencer",
    "default_stages",
]
