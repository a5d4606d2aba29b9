"""Follow-up expansion of search results.

Two slow follow-up calls can enrich a result set, each gated by a yes/no decision
from the reasoning collaborator:

- Discussion raw content: when a discussion hit's snippet is too thin, fetch the
  whole thread and add it as a synthetic document.
- Official detail: when official documentation was hit, ask the corpus one precise
  question in real-time mode and add the answer as a synthetic document.

At most one call of each kind is made per claim per round. Any failure simply
means no expansion.
"""

from typing import Optional, Sequence

import structlog

from proposal_factcheck.config.prompts.retrieval_prompts import (
    OFFICIAL_DETAIL_DECISION_SYSTEM_PROMPT,
    OFFICIAL_DETAIL_DECISION_USER_PROMPT,
    RAW_CONTENT_DECISION_SYSTEM_PROMPT,
    RAW_CONTENT_DECISION_USER_PROMPT,
)
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import (
    GenerationError,
    RetrievalError,
    SchemaValidationError,
)
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.llm.structured import BooleanSchema, ObjectSchema, StringSchema
from proposal_factcheck.retrieval.client import RetrievalBackend
from proposal_factcheck.retrieval.schemas import (
    DISCUSSION_KIND,
    OFFICIAL_DOC_KIND,
    EvidenceDocument,
)

RAW_DECISION_SCHEMA = ObjectSchema(
    properties={"useRawContent": BooleanSchema(), "reason": StringSchema()},
    required=("useRawContent",),
)

OFFICIAL_DECISION_SCHEMA = ObjectSchema(
    properties={"useOfficialDetail": BooleanSchema(), "question": StringSchema()},
    required=("useOfficialDetail",),
)

MAX_QUESTION_CHARS = 256
OFFICIAL_SNIPPET_CHARS = 1200


def _is_kind(document: EvidenceDocument, kind: str) -> bool:
    return document.source_kind.lower() == kind.lower()


class EvidenceExpander:
    """Decide on and perform discussion and official-doc follow-ups."""

    def __init__(
        self,
        llm: ReasoningClient,
        retrieval: RetrievalBackend,
        settings: Settings,
    ) -> None:
        self._llm = llm
        self._retrieval = retrieval
        self._max_chars = settings.raw_content_max_chars
        self._logger = structlog.get_logger().bind(component="EvidenceExpander")

    async def expand_discussion(
        self, claim: str, documents: Sequence[EvidenceDocument]
    ) -> Optional[EvidenceDocument]:
        """Fetch raw thread content for the top discussion hit, if judged worthwhile."""
        top = next((d for d in documents if _is_kind(d, DISCUSSION_KIND) and d.uri), None)
        if top is None:
            return None

        try:
            decision = await self._llm.extract_structured(
                RAW_CONTENT_DECISION_SYSTEM_PROMPT,
                RAW_CONTENT_DECISION_USER_PROMPT.format(
                    claim=claim,
                    title=top.title or "(untitled)",
                    uri=top.uri,
                    snippet=(top.snippet or "(no snippet)")[:800],
                ),
                RAW_DECISION_SCHEMA,
                schema_name="raw_content_decision",
                max_output_tokens=300,
                difficulty="easy",
            )
            if not decision["useRawContent"]:
                return None
            raw = await self._retrieval.fetch_raw_content(top.uri)
        except (SchemaValidationError, GenerationError, RetrievalError) as e:
            self._logger.warning("discussion_expansion_failed", uri=top.uri, error=str(e))
            return None

        if not raw.strip():
            return None
        self._logger.info("discussion_expanded", uri=top.uri, chars=len(raw))
        return EvidenceDocument(
            id=f"{top.id}:raw",
            title=f"Discussion raw content: {top.title}" if top.title else "Discussion raw content",
            uri=top.uri,
            snippet=raw[: self._max_chars],
            source_kind=DISCUSSION_KIND,
            relevance_score=top.relevance_score,
        )

    async def expand_official(
        self, claim: str, documents: Sequence[EvidenceDocument]
    ) -> Optional[EvidenceDocument]:
        """Ask the official corpus a detailed real-time question, if judged worthwhile."""
        hits = [d for d in documents if _is_kind(d, OFFICIAL_DOC_KIND)]
        if not hits:
            return None

        listing = "\n".join(
            f"- {d.title or d.id}: {(d.snippet or '')[:200]}" for d in hits[:5]
        )
        try:
            decision = await self._llm.extract_structured(
                OFFICIAL_DETAIL_DECISION_SYSTEM_PROMPT,
                OFFICIAL_DETAIL_DECISION_USER_PROMPT.format(claim=claim, hits=listing),
                OFFICIAL_DECISION_SCHEMA,
                schema_name="official_detail_decision",
                max_output_tokens=300,
                difficulty="easy",
            )
            if not decision["useOfficialDetail"]:
                return None
            question = (decision.get("question") or claim).strip()[:MAX_QUESTION_CHARS]
            answer = await self._retrieval.answer_from_corpus(question, realtime=True)
        except (SchemaValidationError, GenerationError, RetrievalError) as e:
            self._logger.warning("official_expansion_failed", claim=claim[:60], error=str(e))
            return None

        if not answer.answer.strip():
            return None
        cited = next((c.uri for c in answer.citations if c.uri), None)
        self._logger.info("official_detail_expanded", question=question[:80], cited=bool(cited))
        return EvidenceDocument(
            id="official-detail",
            title="Official doc detail",
            uri=cited,
            snippet=answer.answer[:OFFICIAL_SNIPPET_CHARS],
            source_kind=OFFICIAL_DOC_KIND,
        )
