"""Search executor running one plan through the escalation cascade.

A plan that comes back empty is not given up on immediately:

1. Threshold tools (vector, hybrid) retry the same tool at a lower similarity
   threshold (never below the floor) with source/type filters dropped. Keyword
   retries without filters only if filters were used.
2. If still empty, the executor falls back to a broader tool: vector and hybrid
   degrade to keyword; keyword escalates to hybrid at a relaxed threshold.

Every call is recorded as a RetrievalAttempt, including failed ones. Retrieval
errors are absorbed and treated as an empty result.

Usage:
    executor = SearchExecutor(retrieval, EscalationPolicy.from_settings(settings))
    outcome = await executor.execute(plan)
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import RetrievalError
from proposal_factcheck.retrieval.client import RetrievalBackend
from proposal_factcheck.retrieval.schemas import (
    THRESHOLD_TOOLS,
    EvidenceDocument,
    NoSearchPlan,
    RetrievalAttempt,
    SearchTool,
)

DEFAULT_FALLBACKS: dict[SearchTool, SearchTool] = {
    SearchTool.VECTOR: SearchTool.KEYWORD,
    SearchTool.HYBRID: SearchTool.KEYWORD,
    SearchTool.KEYWORD: SearchTool.HYBRID,
    SearchTool.OFFICIAL_ANSWER: SearchTool.HYBRID,
}


@dataclass(frozen=True)
class EscalationPolicy:
    """Constants of the escalation cascade.

    Attributes:
        default_threshold: Similarity threshold when a plan does not set one
        threshold_step: Amount the threshold is lowered on the first retry
        threshold_floor: Lowest threshold the cascade will use
        keyword_fallback_threshold: Threshold used when keyword escalates to hybrid
        fallbacks: Broader tool to try once the original tool is exhausted
    """

    default_threshold: float = 0.4
    threshold_step: float = 0.1
    threshold_floor: float = 0.15
    keyword_fallback_threshold: float = 0.3
    fallbacks: dict[SearchTool, SearchTool] = field(
        default_factory=lambda: dict(DEFAULT_FALLBACKS)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "EscalationPolicy":
        return cls(
            default_threshold=settings.similarity_threshold_default,
            threshold_step=settings.similarity_threshold_step,
            threshold_floor=settings.similarity_threshold_floor,
            keyword_fallback_threshold=settings.keyword_fallback_threshold,
        )

    def lowered(self, threshold: float) -> float:
        return max(self.threshold_floor, round(threshold - self.threshold_step, 6))

    def fallback_for(self, tool: SearchTool) -> Optional[SearchTool]:
        return self.fallbacks.get(SearchTool(tool))


@dataclass
class SearchOutcome:
    documents: list[EvidenceDocument] = field(default_factory=list)
    attempts: list[RetrievalAttempt] = field(default_factory=list)
    answer: Optional[str] = None


class SearchExecutor:
    """Execute search plans against the retrieval collaborator with escalation."""

    def __init__(
        self,
        retrieval: RetrievalBackend,
        policy: Optional[EscalationPolicy] = None,
    ) -> None:
        self._retrieval = retrieval
        self._policy = policy if policy is not None else EscalationPolicy()
        self._logger = structlog.get_logger().bind(component="SearchExecutor")

    @property
    def policy(self) -> EscalationPolicy:
        return self._policy

    async def execute(self, plan) -> SearchOutcome:
        """Run ``plan``, escalating until something is found or the cascade ends.

        Args:
            plan: Any SearchPlan variant.

        Returns:
            SearchOutcome with the first non-empty document list (possibly empty)
            and every attempt made.
        """
        outcome = SearchOutcome()
        if isinstance(plan, NoSearchPlan):
            self._logger.debug("search_skipped", reason="planner chose none")
            return outcome

        tool = SearchTool(plan.tool)
        query = plan.query
        limit = plan.limit

        if tool == SearchTool.OFFICIAL_ANSWER:
            threshold = self._initial_threshold(plan)
            outcome.documents = await self._official(query, threshold, outcome)
        else:
            threshold = self._initial_threshold(plan) if tool in THRESHOLD_TOOLS else None
            outcome.documents = await self._run(
                tool, query, limit, threshold,
                plan.source_filters, plan.type_filters, outcome,
            )
            if outcome.documents:
                return outcome

            # Step 1: same tool, relaxed
            if threshold is not None:
                lowered = self._policy.lowered(threshold)
                if lowered < threshold or plan.has_filters:
                    outcome.documents = await self._run(
                        tool, query, limit, lowered, (), (), outcome,
                    )
                    threshold = lowered
            elif plan.has_filters:
                outcome.documents = await self._run(tool, query, limit, None, (), (), outcome)

        if outcome.documents:
            return outcome

        # Step 2: broader tool
        fallback = self._policy.fallback_for(tool)
        if fallback is None or fallback == tool:
            return outcome
        if fallback == SearchTool.OFFICIAL_ANSWER:
            outcome.documents = await self._official(
                query, self._policy.keyword_fallback_threshold, outcome
            )
        else:
            fallback_threshold = (
                self._policy.keyword_fallback_threshold if fallback in THRESHOLD_TOOLS else None
            )
            outcome.documents = await self._run(
                fallback, query, limit, fallback_threshold, (), (), outcome,
            )

        if not outcome.documents:
            self._logger.info(
                "search_cascade_exhausted",
                query=query[:80],
                attempts=len(outcome.attempts),
            )
        return outcome

    def _initial_threshold(self, plan) -> float:
        value = getattr(plan, "similarity_threshold", None)
        return self._policy.default_threshold if value is None else value

    async def _run(
        self,
        tool: SearchTool,
        query: str,
        limit: int,
        threshold: Optional[float],
        source_filters: tuple[str, ...],
        type_filters: tuple[str, ...],
        outcome: SearchOutcome,
    ) -> list[EvidenceDocument]:
        error: Optional[str] = None
        try:
            documents = await self._retrieval.search(
                tool,
                query,
                limit,
                similarity_threshold=threshold,
                source_filters=source_filters,
                type_filters=type_filters,
            )
        except RetrievalError as e:
            documents = []
            error = str(e)
            self._logger.warning("search_attempt_failed", tool=tool.value, query=query[:50], error=error)

        outcome.attempts.append(
            RetrievalAttempt(
                tool=tool,
                query=query,
                result_count=len(documents),
                source_filters=tuple(source_filters),
                type_filters=tuple(type_filters),
                similarity_threshold=threshold,
                error=error,
            )
        )
        self._logger.debug(
            "search_attempt",
            tool=tool.value,
            threshold=threshold,
            filters=bool(source_filters or type_filters),
            results=len(documents),
        )
        return list(documents)

    async def _official(
        self, query: str, threshold: float, outcome: SearchOutcome
    ) -> list[EvidenceDocument]:
        error: Optional[str] = None
        documents: list[EvidenceDocument] = []
        try:
            answer = await self._retrieval.answer_from_corpus(query, realtime=False)
            documents = list(answer.citations)
            if answer.answer:
                outcome.answer = answer.answer
        except RetrievalError as e:
            error = str(e)
            self._logger.warning("official_answer_failed", query=query[:50], error=error)

        outcome.attempts.append(
            RetrievalAttempt(
                tool=SearchTool.OFFICIAL_ANSWER,
                query=query,
                result_count=len(documents),
                similarity_threshold=threshold,
                error=error,
            )
        )
        return documents
