"""Stage sequencer with QA gating and confidence scoring.

Runs the evaluation stages in fixed order. Each stage is QA-checked against its
rubric and re-run while QA is unsatisfied, up to ``stage_max_iterations`` runs in
total. The sequencer always proceeds to the next stage and always returns a report.
"""

from typing import Any, Optional, Sequence

from pydantic import BaseModel

from proposal_factcheck.config.logging import get_logger
from proposal_factcheck.config.prompts.stage_prompts import (
    QA_SYSTEM_PROMPT,
    SCORE_SYSTEM_PROMPT,
    SCORE_USER_PROMPT,
)
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError, SchemaValidationError
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.llm.structured import NumberSchema, ObjectSchema, StringSchema
from proposal_factcheck.metrics import collect_metrics
from proposal_factcheck.orchestration.context import RunContext
from proposal_factcheck.orchestration.schemas import (
    STAGE_ORDER,
    EvaluationReport,
    StageName,
    StageResult,
)
from proposal_factcheck.orchestration.stages import (
    ChallengerStage,
    FactCheckStage,
    JudgeStage,
    PlannerStage,
    ReasonerStage,
    Stage,
    render,
)
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine
from proposal_factcheck.verification.claim_verifier import ClaimVerifier
from proposal_factcheck.verification.classifier import ClaimClassifier
from proposal_factcheck.verification.fact_checker import FactChecker

SCORE_SCHEMA = ObjectSchema(
    properties={"confidence": NumberSchema(), "notes": StringSchema()},
    required=("confidence",),
)

_COLLABORATOR_ERRORS = (SchemaValidationError, GenerationError)


def default_stages(fact_checker: FactChecker) -> list[Stage]:
    """The five evaluation stages in their canonical order."""
    return [
        PlannerStage(),
        FactCheckStage(fact_checker),
        ReasonerStage(),
        ChallengerStage(),
        JudgeStage(),
    ]


class StageSequencer:
    """Run stages in order with QA re-runs, default fallbacks and scoring."""

    def __init__(
        self,
        stages: Sequence[Stage],
        llm: ReasoningClient,
        settings: Settings,
        usage_sources: Sequence[Any] = (),
    ):
        order = {name: i for i, name in enumerate(STAGE_ORDER)}
        self.stages = sorted(stages, key=lambda s: order[s.name])
        self.llm = llm
        self.settings = settings
        self.max_runs = max(1, settings.stage_max_iterations)
        self.usage_sources = list(usage_sources)
        self.logger = get_logger("orchestration.sequencer")

    async def run(self, ctx: RunContext) -> EvaluationReport:
        """Evaluate ``ctx.proposal`` through every stage.

        Returns:
            EvaluationReport with one StageResult per stage and the judge's
            recommendation when adjudication produced one.
        """
        report = EvaluationReport(proposal_id=ctx.proposal.id)
        self.logger.info(f"Evaluating proposal {ctx.proposal.id} through {len(self.stages)} stages")

        for stage in self.stages:
            result = await self._run_stage(stage, ctx)
            ctx.outputs[stage.name] = result.output
            report.stages[stage.name.value] = result

        adjudication = ctx.output_of(StageName.ADJUDICATION)
        if adjudication is not None:
            report.recommendation = adjudication.recommendation
        if self.usage_sources:
            report.metrics = collect_metrics(*self.usage_sources)

        self.logger.info(
            f"Evaluation of {ctx.proposal.id} complete, recommendation={report.recommendation}"
        )
        return report

    async def _run_stage(self, stage: Stage, ctx: RunContext) -> StageResult:
        output: Optional[BaseModel] = None
        degraded = False
        qa_satisfied: Optional[bool] = None
        runs = 0

        while runs < self.max_runs:
            runs += 1
            try:
                output = await stage.run(ctx)
                degraded = False
            except _COLLABORATOR_ERRORS as e:
                self.logger.warning(f"Stage {stage.name.value} run {runs} failed: {e}")
                if output is None:
                    output = stage.fallback(ctx)
                    degraded = True
                else:
                    break

            ctx.audit.append_step(
                stage.name.value,
                ctx.trace_label(stage.name, stage.label),
                input={"run": runs},
                output=render(output),
                references=_references(output),
            )

            qa_satisfied = await self._qa(stage, output, ctx)
            if qa_satisfied is None or qa_satisfied:
                break
            if runs < self.max_runs:
                self.logger.info(f"QA unsatisfied for {stage.name.value}, re-running")

        confidence = getattr(output, "confidence", None)
        if confidence is None:
            confidence = await self._score(stage, output, ctx)

        return StageResult(
            stage=stage.name,
            output=output,
            confidence=confidence,
            runs=runs,
            qa_satisfied=qa_satisfied,
            degraded=degraded,
        )

    async def _qa(self, stage: Stage, output: BaseModel, ctx: RunContext) -> Optional[bool]:
        """Check ``output`` against the stage rubric; None when QA is unavailable."""
        rubric = stage.rubric
        try:
            raw = await self.llm.extract_structured(
                QA_SYSTEM_PROMPT,
                rubric.prompt.format(output=render(output)),
                rubric.schema,
                schema_name=rubric.schema_name,
                max_output_tokens=800,
                difficulty="easy",
            )
        except _COLLABORATOR_ERRORS as e:
            self.logger.warning(f"QA for {stage.name.value} failed, keeping current output: {e}")
            return None

        satisfied = bool(rubric.passed(raw, self.settings))
        ctx.audit.append_step(
            "qa",
            f"QA for {stage.name.value}",
            output={**raw, "satisfied": satisfied},
        )
        return satisfied

    async def _score(self, stage: Stage, output: BaseModel, ctx: RunContext) -> Optional[float]:
        try:
            raw = await self.llm.extract_structured(
                SCORE_SYSTEM_PROMPT,
                SCORE_USER_PROMPT.format(stage=stage.name.value, output=render(output)),
                SCORE_SCHEMA,
                schema_name="stage_confidence",
                max_output_tokens=400,
                difficulty="easy",
            )
        except _COLLABORATOR_ERRORS as e:
            self.logger.warning(f"Confidence scoring for {stage.name.value} failed: {e}")
            return None

        confidence = min(1.0, max(0.0, raw["confidence"]))
        ctx.audit.append_step(
            "score",
            f"Scored {stage.name.value}",
            output={"confidence": confidence, "notes": raw.get("notes", "")},
        )
        return confidence


def _references(output: Any) -> list[str]:
    for attr in ("key_evidence", "evidence"):
        value = getattr(output, attr, None)
        if value:
            return list(value)
    return []


def build_sequencer(
    llm: ReasoningClient,
    engine: EvidenceAcquisitionEngine,
    settings: Settings,
    retrieval: Optional[Any] = None,
) -> StageSequencer:
    """Wire the default stages around one engine and reasoning client.

    The client, the retrieval backend and the classifier are counted into
    the report's run metrics.
    """
    classifier = ClaimClassifier(llm, evidence_limit=settings.classifier_evidence_limit)
    verifier = ClaimVerifier(engine, classifier, settings)
    fact_checker = FactChecker(llm, engine, verifier, settings)
    sources = [s for s in (llm, retrieval, classifier) if s is not None]
    return StageSequencer(default_stages(fact_checker), llm, settings, usage_sources=sources)
