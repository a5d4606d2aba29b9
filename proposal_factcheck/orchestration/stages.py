"""Evaluation stages and their QA rubrics.

Each stage produces one typed output from the run context. Stages raise
SchemaValidationError / GenerationError when the reasoning collaborator fails; the
sequencer decides whether to fall back to the stage's default output.

Stages:
    PlannerStage: objectives, tasks, assumptions and risks
    FactCheckStage: claim extraction and verification (FactChecker)
    ReasonerStage: argument with premises, refined against premise evidence
    ChallengerStage: counterpoints and failure modes, grounded in evidence
    JudgeStage: recommendation (for / against / abstain / defer)
"""

import functools
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import aiometer
from pydantic import BaseModel

from proposal_factcheck.config.logging import get_logger
from proposal_factcheck.config.prompts.stage_prompts import (
    ADJUDICATION_QA_PROMPT,
    CHALLENGE_QA_PROMPT,
    CHALLENGER_SYSTEM_PROMPT,
    CHALLENGER_USER_PROMPT,
    FACT_CHECK_QA_PROMPT,
    JUDGE_SYSTEM_PROMPT,
    JUDGE_USER_PROMPT,
    PLANNER_SYSTEM_PROMPT,
    PLANNER_USER_PROMPT,
    PLANNING_QA_PROMPT,
    REASONER_SYSTEM_PROMPT,
    REASONER_USER_PROMPT,
    REASONING_QA_PROMPT,
)
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.llm.structured import (
    ArraySchema,
    BooleanSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)
from proposal_factcheck.orchestration.context import RunContext
from proposal_factcheck.orchestration.schemas import (
    AdjudicationOutput,
    ChallengeOutput,
    PlanningOutput,
    ReasoningOutput,
    StageName,
)
from proposal_factcheck.retrieval.engine import dedupe_by_uri
from proposal_factcheck.retrieval.schemas import EvidenceDocument
from proposal_factcheck.verification.fact_checker import FactChecker
from proposal_factcheck.verification.schemas import FactCheckOutput

DOCS_PER_PREMISE = 3
PROMPT_SECTION_CHARS = 4000

_STRINGS = ArraySchema(StringSchema())


def render(value: Any, max_chars: int = PROMPT_SECTION_CHARS) -> str:
    """Compact JSON rendering of a stage output for prompts."""
    if value is None:
        return "(not available)"
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, ensure_ascii=False)[:max_chars]


def render_evidence(documents: Sequence[EvidenceDocument]) -> str:
    if not documents:
        return "(no evidence found)"
    return "\n".join(
        f"[{i}] {d.title or d.id} <{d.uri or 'no uri'}>: {(d.snippet or '')[:300]}"
        for i, d in enumerate(documents, start=1)
    )


async def gather_premise_evidence(
    ctx: RunContext, premises: Sequence[str], hints: Sequence[str]
) -> list[EvidenceDocument]:
    """Acquire evidence for the first few premises through a bounded pool."""
    selected = [p for p in premises if p.strip()][: ctx.settings.premise_evidence_max]
    if not selected:
        return []
    jobs = [functools.partial(ctx.engine.acquire, premise, tuple(hints)) for premise in selected]
    bundles = await aiometer.run_all(jobs, max_at_once=ctx.settings.retrieval_concurrency)
    return dedupe_by_uri(doc for bundle in bundles for doc in bundle.documents[:DOCS_PER_PREMISE])


# ── QA rubrics ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class QARubric:
    """Stage-specific QA check: prompt, schema and pass predicate."""

    prompt: str
    schema: ObjectSchema
    schema_name: str
    passed: Callable[[dict[str, Any], Settings], bool]


PLANNING_QA = QARubric(
    prompt=PLANNING_QA_PROMPT,
    schema=ObjectSchema(
        properties={"satisfied": BooleanSchema(), "missing": _STRINGS},
        required=("satisfied",),
    ),
    schema_name="planning_qa",
    passed=lambda raw, _: raw["satisfied"],
)

FACT_CHECK_QA = QARubric(
    prompt=FACT_CHECK_QA_PROMPT,
    schema=ObjectSchema(
        properties={"satisfied": BooleanSchema(), "missingCitations": _STRINGS},
        required=("satisfied",),
    ),
    schema_name="fact_check_qa",
    passed=lambda raw, _: raw["satisfied"],
)

REASONING_QA = QARubric(
    prompt=REASONING_QA_PROMPT,
    schema=ObjectSchema(
        properties={"coherent": BooleanSchema(), "gaps": _STRINGS},
        required=("coherent",),
    ),
    schema_name="reasoning_qa",
    passed=lambda raw, _: raw["coherent"],
)

CHALLENGE_QA = QARubric(
    prompt=CHALLENGE_QA_PROMPT,
    schema=ObjectSchema(
        properties={"robust": BooleanSchema(), "missingRisks": _STRINGS},
        required=("robust",),
    ),
    schema_name="challenge_qa",
    passed=lambda raw, _: raw["robust"],
)

ADJUDICATION_QA = QARubric(
    prompt=ADJUDICATION_QA_PROMPT,
    schema=ObjectSchema(
        properties={"accept": BooleanSchema(), "confidence": NumberSchema()},
    ),
    schema_name="adjudication_qa",
    passed=lambda raw, settings: raw["accept"] and raw["confidence"] >= settings.judge_confidence_threshold,
)


# ── Stages ──────────────────────────────────────────────────────────

class Stage(ABC):
    """One step of the evaluation sequence."""

    name: StageName
    rubric: QARubric
    label: str

    @abstractmethod
    async def run(self, ctx: RunContext) -> BaseModel:
        """Produce this stage's output from the context."""

    @abstractmethod
    def fallback(self, ctx: RunContext) -> BaseModel:
        """Default output used when the first run fails."""


class PlannerStage(Stage):
    name = StageName.PLANNING
    rubric = PLANNING_QA
    label = "Planner produced evaluation plan"

    SCHEMA = ObjectSchema(
        properties={
            "objectives": _STRINGS,
            "tasks": _STRINGS,
            "assumptions": _STRINGS,
            "risks": _STRINGS,
        },
    )

    async def run(self, ctx: RunContext) -> PlanningOutput:
        raw = await ctx.llm.extract_structured(
            PLANNER_SYSTEM_PROMPT,
            PLANNER_USER_PROMPT.format(proposal=ctx.proposal.digest()),
            self.SCHEMA,
            schema_name=ctx.schema_name(self.name, "planning_output"),
            max_output_tokens=2000,
        )
        return PlanningOutput(**raw)

    def fallback(self, ctx: RunContext) -> PlanningOutput:
        return PlanningOutput()


class FactCheckStage(Stage):
    name = StageName.FACT_CHECK
    rubric = FACT_CHECK_QA
    label = "Fact checker verified claims"

    def __init__(self, fact_checker: FactChecker) -> None:
        self._fact_checker = fact_checker

    async def run(self, ctx: RunContext) -> FactCheckOutput:
        # A re-run replaces the previous output, so its consumed URIs start fresh
        seen: set[str] = set()
        output = await self._fact_checker.check(ctx.proposal, ctx.audit, seen)
        ctx.seen_uris.update(seen)
        return output

    def fallback(self, ctx: RunContext) -> FactCheckOutput:
        return FactCheckOutput()


class ReasonerStage(Stage):
    name = StageName.REASONING
    rubric = REASONING_QA
    label = "Reasoner built argument"

    SCHEMA = ObjectSchema(
        properties={
            "argument": StringSchema(),
            "premises": _STRINGS,
            "uncertainties": _STRINGS,
        },
    )

    def __init__(self) -> None:
        self._logger = get_logger("orchestration.reasoner")

    async def run(self, ctx: RunContext) -> ReasoningOutput:
        facts = render(ctx.output_of(StageName.FACT_CHECK))
        plan = render(ctx.output_of(StageName.PLANNING))
        schema_name = ctx.schema_name(self.name, "reasoning_output")

        draft = await ctx.llm.extract_structured(
            REASONER_SYSTEM_PROMPT,
            REASONER_USER_PROMPT.format(
                proposal=ctx.proposal.digest(), plan=plan, facts=facts, evidence_block=""
            ),
            self.SCHEMA,
            schema_name=schema_name,
            max_output_tokens=3000,
            difficulty="hard",
        )

        evidence = await gather_premise_evidence(ctx, draft["premises"], ("reasoning premise",))
        if not evidence:
            return ReasoningOutput(**draft)

        self._logger.info(f"Refining argument with {len(evidence)} premise evidence documents")
        refined = await ctx.llm.extract_structured(
            REASONER_SYSTEM_PROMPT,
            REASONER_USER_PROMPT.format(
                proposal=ctx.proposal.digest(),
                plan=plan,
                facts=facts,
                evidence_block=(
                    f"\nDRAFT ARGUMENT:\n{render(draft)}\n\n"
                    f"PREMISE EVIDENCE:\n{render_evidence(evidence)}\n\n"
                    "Revise the argument against this evidence."
                ),
            ),
            self.SCHEMA,
            schema_name=schema_name,
            max_output_tokens=3000,
            difficulty="hard",
        )
        return ReasoningOutput(**refined, evidence=[d.uri for d in evidence if d.uri])

    def fallback(self, ctx: RunContext) -> ReasoningOutput:
        return ReasoningOutput(argument="Reasoning unavailable")


class ChallengerStage(Stage):
    name = StageName.CHALLENGE
    rubric = CHALLENGE_QA
    label = "Challenger stress-tested argument"

    SCHEMA = ObjectSchema(
        properties={"counterpoints": _STRINGS, "failureModes": _STRINGS},
    )

    async def run(self, ctx: RunContext) -> ChallengeOutput:
        reasoning = ctx.output_of(StageName.REASONING) or ReasoningOutput()
        evidence = await gather_premise_evidence(
            ctx, reasoning.premises, ("risk", "criticism", "failure")
        )
        raw = await ctx.llm.extract_structured(
            CHALLENGER_SYSTEM_PROMPT,
            CHALLENGER_USER_PROMPT.format(
                proposal=ctx.proposal.digest(),
                argument=reasoning.argument or "(none)",
                premises="\n".join(f"- {p}" for p in reasoning.premises) or "(none)",
                evidence=render_evidence(evidence),
            ),
            self.SCHEMA,
            schema_name=ctx.schema_name(self.name, "challenge_output"),
            max_output_tokens=2500,
            difficulty="hard",
        )
        return ChallengeOutput(
            counterpoints=raw["counterpoints"],
            failure_modes=raw["failureModes"],
            evidence=[d.uri for d in evidence if d.uri],
        )

    def fallback(self, ctx: RunContext) -> ChallengeOutput:
        return ChallengeOutput()


class JudgeStage(Stage):
    name = StageName.ADJUDICATION
    rubric = ADJUDICATION_QA
    label = "Judge issued recommendation"

    SCHEMA = ObjectSchema(
        properties={
            "recommendation": StringSchema(enum=("for", "against", "abstain", "defer")),
            "rationale": StringSchema(),
            "confidence": NumberSchema(),
        },
    )

    async def run(self, ctx: RunContext) -> AdjudicationOutput:
        reasoning = ctx.output_of(StageName.REASONING)
        raw = await ctx.llm.extract_structured(
            JUDGE_SYSTEM_PROMPT,
            JUDGE_USER_PROMPT.format(
                proposal=ctx.proposal.digest(),
                facts=render(ctx.output_of(StageName.FACT_CHECK)),
                argument=render(reasoning),
                challenge=render(ctx.output_of(StageName.CHALLENGE)),
            ),
            self.SCHEMA,
            schema_name=ctx.schema_name(self.name, "adjudication_output"),
            max_output_tokens=1500,
            difficulty="hard",
        )
        return AdjudicationOutput(
            recommendation=raw["recommendation"],
            rationale=raw["rationale"],
            confidence=min(1.0, max(0.0, raw["confidence"])),
        )

    def fallback(self, ctx: RunContext) -> AdjudicationOutput:
        return AdjudicationOutput(recommendation="defer", rationale="Adjudication unavailable")
