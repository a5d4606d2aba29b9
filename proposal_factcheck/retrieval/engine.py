"""Evidence Acquisition Engine.

Given a claim and optional hints, returns a de-duplicated, ranked document set plus
the record of every retrieval attempt made. The flow per call:

1. Cache lookup on the normalized (claim, hints) key. A live entry is returned as
   stored, minus URIs already consumed this run. Refinement rounds that pass prior
   attempts skip the read so they get a fresh plan.
2. Up to ``retrieval_max_rounds`` rounds of plan -> execute with escalation ->
   expand (discussion raw content, official detail) -> de-duplicate by URI.
   The loop stops at the first non-empty set.
3. Store the bundle in the cache.

Retrieval failures and empty evidence never raise: a total failure yields an empty
bundle, which callers treat as "unknown", not as fatal.

Usage:
    engine = EvidenceAcquisitionEngine(retrieval, llm, settings, cache=EvidenceCache())
    bundle = await engine.acquire("The grant budget is $1.2M", hints=["budget"])
"""

from typing import Iterable, Optional, Sequence

import structlog

from proposal_factcheck.config.settings import Settings
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.retrieval.cache import EvidenceCache
from proposal_factcheck.retrieval.client import RetrievalBackend
from proposal_factcheck.retrieval.expansion import EvidenceExpander
from proposal_factcheck.retrieval.planner import SearchPlanner
from proposal_factcheck.retrieval.schemas import (
    EvidenceBundle,
    EvidenceDocument,
    RetrievalAttempt,
)
from proposal_factcheck.retrieval.search_executor import EscalationPolicy, SearchExecutor

MAX_ROUNDS = 3


def dedupe_by_uri(documents: Iterable[EvidenceDocument]) -> list[EvidenceDocument]:
    """Keep the first occurrence of each non-empty URI; documents without a URI are kept."""
    seen: set[str] = set()
    unique: list[EvidenceDocument] = []
    for doc in documents:
        if doc.uri:
            if doc.uri in seen:
                continue
            seen.add(doc.uri)
        unique.append(doc)
    return unique


def exclude_seen(
    documents: Iterable[EvidenceDocument], seen_uris: Optional[set[str]]
) -> list[EvidenceDocument]:
    if not seen_uris:
        return list(documents)
    return [d for d in documents if not d.uri or d.uri not in seen_uris]


class EvidenceAcquisitionEngine:
    """Acquire evidence for claims with caching, escalation and expansion.

    Components are injectable for testing; defaults are built from the retrieval
    backend, reasoning client and settings.
    """

    def __init__(
        self,
        retrieval: RetrievalBackend,
        llm: ReasoningClient,
        settings: Settings,
        cache: Optional[EvidenceCache] = None,
        planner: Optional[SearchPlanner] = None,
        executor: Optional[SearchExecutor] = None,
        expander: Optional[EvidenceExpander] = None,
    ) -> None:
        policy = EscalationPolicy.from_settings(settings)
        self._settings = settings
        if cache is None:
            cache = EvidenceCache(ttl_seconds=settings.evidence_cache_ttl_seconds)
        self._cache = cache
        self._planner = planner if planner is not None else SearchPlanner(llm, settings, policy)
        self._executor = executor if executor is not None else SearchExecutor(retrieval, policy)
        self._expander = expander if expander is not None else EvidenceExpander(llm, retrieval, settings)
        self._rounds = min(MAX_ROUNDS, max(1, settings.retrieval_max_rounds))
        self._logger = structlog.get_logger().bind(component="EvidenceAcquisitionEngine")

    @property
    def cache(self) -> EvidenceCache:
        return self._cache

    async def acquire(
        self,
        claim: str,
        hints: Sequence[str] = (),
        seen_uris: Optional[set[str]] = None,
        prior_attempts: Optional[Sequence[RetrievalAttempt]] = None,
    ) -> EvidenceBundle:
        """Acquire evidence for one claim.

        Args:
            claim: Claim text.
            hints: Evidence hints; part of the cache key.
            seen_uris: URIs already consumed this run; excluded from the result.
            prior_attempts: Attempts from earlier refinement rounds. When given, the
                cache read is skipped and the planner is steered away from them.

        Returns:
            EvidenceBundle (possibly empty). Never raises for retrieval failures.
        """
        key = EvidenceCache.make_key(claim, hints)

        if not prior_attempts:
            entry = self._cache.get(key)
            if entry is not None:
                documents = exclude_seen(entry.documents, seen_uris)
                self._logger.info(
                    "evidence_cache_hit",
                    claim=claim[:60],
                    documents=len(documents),
                    filtered=len(entry.documents) - len(documents),
                )
                return EvidenceBundle(
                    documents=documents,
                    attempts=list(entry.attempts),
                    answer=entry.answer,
                    from_cache=True,
                )

        tried: list[RetrievalAttempt] = list(prior_attempts or [])
        attempts: list[RetrievalAttempt] = []
        documents: list[EvidenceDocument] = []
        answer: Optional[str] = None

        for round_index in range(self._rounds):
            plan = await self._planner.plan(claim, hints, tried)
            outcome = await self._executor.execute(plan)
            attempts.extend(outcome.attempts)
            tried.extend(outcome.attempts)
            if outcome.answer:
                answer = outcome.answer

            if not outcome.documents:
                self._logger.debug("evidence_round_empty", claim=claim[:60], round=round_index + 1)
                continue

            synthetic: list[EvidenceDocument] = []
            raw_doc = await self._expander.expand_discussion(claim, outcome.documents)
            if raw_doc is not None:
                synthetic.append(raw_doc)
            official_doc = await self._expander.expand_official(claim, outcome.documents)
            if official_doc is not None:
                synthetic.append(official_doc)

            documents = dedupe_by_uri([*synthetic, *outcome.documents])
            break

        bundle = EvidenceBundle(documents=documents, attempts=attempts, answer=answer)
        self._cache.put(key, bundle)

        visible = exclude_seen(documents, seen_uris)
        self._logger.info(
            "evidence_acquired",
            claim=claim[:60],
            documents=len(visible),
            attempts=len(attempts),
        )
        return bundle.model_copy(update={"documents": visible})
