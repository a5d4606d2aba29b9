"""Search planner: asks the reasoning collaborator which retrieval strategy to use.

The collaborator proposes a tool, query, limit, threshold and filters. The proposal
is then sanitized: filters are restricted to the configured allowed lists, the
limit and threshold are clamped, and an empty query falls back to the claim text.
Optionally the query is rewritten into keyword form, but the rewrite is only kept
when it is no longer than the original and preserves every number and source name.

A plan that repeats a prior zero-result (tool, query) pair follows the escalation
chain to the first untried tool. When every tool in the chain has failed on that
query, the hints are appended to it; if that is exhausted too, no search is made.
If planning fails outright, a hybrid plan on the claim text is used instead.
"""

import re
from typing import Any, Iterable, Optional, Sequence

import structlog

from proposal_factcheck.config.prompts.retrieval_prompts import (
    QUERY_REWRITE_SYSTEM_PROMPT,
    QUERY_REWRITE_USER_PROMPT,
    SEARCH_PLANNER_SYSTEM_PROMPT,
    SEARCH_PLANNER_USER_PROMPT,
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
from proposal_factcheck.retrieval.schemas import (
    THRESHOLD_TOOLS,
    HybridPlan,
    NoSearchPlan,
    RetrievalAttempt,
    SearchTool,
    search_plan_adapter,
)
from proposal_factcheck.retrieval.search_executor import EscalationPolicy

MAX_QUERY_CHARS = 256
MAX_LIMIT = 20

PLAN_SCHEMA = ObjectSchema(
    properties={
        "tool": StringSchema(enum=tuple(t.value for t in SearchTool)),
        "query": StringSchema(),
        "limit": NumberSchema(integer=True),
        "similarityThreshold": NumberSchema(),
        "sourceFilters": ArraySchema(StringSchema()),
        "typeFilters": ArraySchema(StringSchema()),
        "rationale": StringSchema(),
    },
    required=("tool",),
)

REWRITE_SCHEMA = ObjectSchema(properties={"query": StringSchema()})

_NUMBER = re.compile(r"\d+(?:[.,]\d+)*")


def rewrite_preserves(original: str, rewritten: str, source_names: Iterable[str]) -> bool:
    """True if ``rewritten`` is not longer and keeps every number and source name."""
    if not rewritten.strip() or len(rewritten) > len(original):
        return False
    if any(n not in rewritten for n in _NUMBER.findall(original)):
        return False
    original_lower = original.lower()
    rewritten_lower = rewritten.lower()
    return all(
        name.lower() in rewritten_lower
        for name in source_names
        if name and name.lower() in original_lower
    )


def _restrict(values: Optional[Sequence[str]], allowed: Sequence[str]) -> tuple[str, ...]:
    canonical = {a.lower(): a for a in allowed}
    kept: list[str] = []
    for value in values or []:
        match = canonical.get(str(value).strip().lower())
        if match and match not in kept:
            kept.append(match)
    return tuple(kept)


class SearchPlanner:
    """Choose a SearchPlan for a claim via the reasoning collaborator."""

    def __init__(
        self,
        llm: ReasoningClient,
        settings: Settings,
        policy: Optional[EscalationPolicy] = None,
    ) -> None:
        self._llm = llm
        self._settings = settings
        self._policy = policy if policy is not None else EscalationPolicy.from_settings(settings)
        self._logger = structlog.get_logger().bind(component="SearchPlanner")

    async def plan(
        self,
        claim: str,
        hints: Sequence[str] = (),
        prior_attempts: Sequence[RetrievalAttempt] = (),
    ):
        """Produce a sanitized plan for ``claim``.

        Args:
            claim: Claim text to find evidence for.
            hints: Evidence hints from extraction.
            prior_attempts: Attempts already made for this claim.

        Returns:
            A SearchPlan variant. Never raises for collaborator failures.
        """
        user_prompt = SEARCH_PLANNER_USER_PROMPT.format(
            claim=claim,
            hints="\n".join(f"- {h}" for h in hints) or "(none)",
            sources=", ".join(self._settings.retrieval_sources) or "(any)",
            types=", ".join(self._settings.retrieval_types) or "(any)",
            prior_attempts="\n".join(
                f"- {a.tool.value} | {a.query} | {a.result_count}" for a in prior_attempts
            ) or "(none)",
        )
        try:
            raw = await self._llm.extract_structured(
                SEARCH_PLANNER_SYSTEM_PROMPT,
                user_prompt,
                PLAN_SCHEMA,
                schema_name="search_plan",
                max_output_tokens=800,
                difficulty="easy",
            )
            plan = self.sanitize(raw, claim)
        except (SchemaValidationError, GenerationError) as e:
            self._logger.warning("plan_selection_failed", claim=claim[:60], error=str(e))
            plan = HybridPlan(
                query=claim.strip()[:MAX_QUERY_CHARS] or "proposal",
                limit=self._settings.retrieval_default_limit,
            )

        if isinstance(plan, NoSearchPlan):
            return plan

        if self._settings.query_rewrite_enabled:
            plan = plan.model_copy(update={"query": await self._rewrite(plan.query)})

        plan = self._avoid_repeat(plan, prior_attempts, hints)
        if isinstance(plan, NoSearchPlan):
            return plan
        self._logger.info(
            "plan_selected",
            tool=plan.tool,
            query=plan.query[:80],
            filters=plan.has_filters,
        )
        return plan

    def sanitize(self, raw: dict[str, Any], claim: str):
        """Turn a raw collaborator proposal into a valid SearchPlan."""
        tool = SearchTool(raw["tool"])
        if tool == SearchTool.NONE:
            return NoSearchPlan()

        query = str(raw.get("query") or "").strip() or claim.strip()
        limit = raw.get("limit")
        if not isinstance(limit, int) or limit < 1:
            limit = self._settings.retrieval_default_limit
        data: dict[str, Any] = {
            "tool": tool.value,
            "query": query[:MAX_QUERY_CHARS] or "proposal",
            "limit": min(MAX_LIMIT, limit),
            "source_filters": _restrict(raw.get("sourceFilters"), self._settings.retrieval_sources),
            "type_filters": _restrict(raw.get("typeFilters"), self._settings.retrieval_types),
        }
        if tool in THRESHOLD_TOOLS and raw.get("similarityThreshold") is not None:
            data["similarity_threshold"] = min(1.0, max(0.0, float(raw["similarityThreshold"])))
        return search_plan_adapter.validate_python(data)

    async def _rewrite(self, query: str) -> str:
        try:
            raw = await self._llm.extract_structured(
                QUERY_REWRITE_SYSTEM_PROMPT,
                QUERY_REWRITE_USER_PROMPT.format(
                    query=query, sources=", ".join(self._settings.retrieval_sources) or "(none)"
                ),
                REWRITE_SCHEMA,
                schema_name="query_rewrite",
                max_output_tokens=200,
                difficulty="easy",
            )
        except (SchemaValidationError, GenerationError) as e:
            self._logger.debug("query_rewrite_failed", error=str(e))
            return query

        candidate = raw["query"].strip()
        if rewrite_preserves(query, candidate, self._settings.retrieval_sources):
            return candidate
        self._logger.debug("query_rewrite_rejected", original=query[:80], rewritten=candidate[:80])
        return query

    def _avoid_repeat(self, plan, prior_attempts: Sequence[RetrievalAttempt], hints: Sequence[str] = ()):
        failed = {
            (a.tool, a.query.strip().lower())
            for a in prior_attempts
            if a.result_count == 0
        }
        if not failed:
            return plan

        queries = [plan.query]
        hinted = " ".join([plan.query, *(h.strip() for h in hints if h.strip())])[:MAX_QUERY_CHARS]
        if hinted.strip().lower() != plan.query.strip().lower():
            queries.append(hinted)

        for query in queries:
            tool: Optional[SearchTool] = SearchTool(plan.tool)
            visited: set[SearchTool] = set()
            while tool is not None and tool not in visited:
                if (tool, query.strip().lower()) not in failed:
                    if tool == SearchTool(plan.tool) and query == plan.query:
                        return plan
                    self._logger.info(
                        "plan_repeat_avoided",
                        failed_tool=plan.tool,
                        successor=tool.value,
                        query=query[:80],
                    )
                    return search_plan_adapter.validate_python(
                        {
                            "tool": tool.value,
                            "query": query,
                            "limit": plan.limit,
                            "source_filters": plan.source_filters,
                            "type_filters": plan.type_filters,
                        }
                    )
                visited.add(tool)
                tool = self._policy.fallback_for(tool)

        self._logger.info("plan_exhausted", query=plan.query[:80], failed=len(failed))
        return NoSearchPlan()
