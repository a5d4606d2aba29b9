"""Evidence acquisition schemas.

Defines the documents returned by retrieval, the closed set of search plans the
planner may choose, and the record of every retrieval attempt made for a claim.

Decisions:
- SearchPlan is a discriminated union on ``tool``: only threshold-bearing tools
  carry a similarity threshold, and ``none`` carries nothing.
- EvidenceDocument and RetrievalAttempt are immutable once created.
- Documents without a URI are allowed but can never be cited.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class SearchTool(str, Enum):
    """Retrieval strategies exposed by the retrieval collaborator.

    KEYWORD: Lexical search.
    VECTOR: Embedding similarity search (thresholded).
    HYBRID: Combined lexical and vector ranking (thresholded).
    OFFICIAL_ANSWER: Synthesized answer from official documentation with citations.
    NONE: The planner decided no search is useful.
    """

    KEYWORD = "keyword"
    VECTOR = "vector"
    HYBRID = "hybrid"
    OFFICIAL_ANSWER = "officialAnswer"
    NONE = "none"


THRESHOLD_TOOLS = frozenset({SearchTool.VECTOR, SearchTool.HYBRID, SearchTool.OFFICIAL_ANSWER})

# Source kinds that trigger follow-up expansion.
DISCUSSION_KIND = "discussion"
OFFICIAL_DOC_KIND = "officialDoc"
PAYLOAD_KIND = "payload"


class EvidenceDocument(BaseModel):
    """Single retrieved (or synthesized) document used as evidence."""

    id: str = Field(..., description="Stable identifier within the retrieval service")
    title: Optional[str] = None
    uri: Optional[str] = Field(default=None, description="Citable location; absent for synthetic notes")
    snippet: Optional[str] = None
    source_kind: str = Field(default="unknown", description="e.g. discussion, officialDoc, payload")
    relevance_score: Optional[float] = None

    model_config = {"frozen": True}


class _SearchingPlan(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(default=6, ge=1, le=50)
    source_filters: tuple[str, ...] = ()
    type_filters: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @property
    def has_filters(self) -> bool:
        return bool(self.source_filters or self.type_filters)


class KeywordPlan(_SearchingPlan):
    tool: Literal["keyword"] = "keyword"


class VectorPlan(_SearchingPlan):
    tool: Literal["vector"] = "vector"
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class HybridPlan(_SearchingPlan):
    tool: Literal["hybrid"] = "hybrid"
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class OfficialAnswerPlan(_SearchingPlan):
    tool: Literal["officialAnswer"] = "officialAnswer"
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class NoSearchPlan(BaseModel):
    tool: Literal["none"] = "none"

    model_config = {"frozen": True}


SearchPlan = Annotated[
    Union[KeywordPlan, VectorPlan, HybridPlan, OfficialAnswerPlan, NoSearchPlan],
    Field(discriminator="tool"),
]

search_plan_adapter: TypeAdapter = TypeAdapter(SearchPlan)


class RetrievalAttempt(BaseModel):
    """One call to the retrieval collaborator, recorded regardless of outcome."""

    tool: SearchTool
    query: str
    result_count: int = Field(default=0, ge=0)
    source_filters: tuple[str, ...] = ()
    type_filters: tuple[str, ...] = ()
    similarity_threshold: Optional[float] = None
    error: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def filters_used(self) -> bool:
        return bool(self.source_filters or self.type_filters)


class CorpusAnswer(BaseModel):
    """Synthesized answer from the official documentation corpus."""

    answer: str = ""
    citations: list[EvidenceDocument] = Field(default_factory=list)


class EvidenceBundle(BaseModel):
    """Result of evidence acquisition for one claim."""

    documents: list[EvidenceDocument] = Field(default_factory=list)
    attempts: list[RetrievalAttempt] = Field(default_factory=list)
    answer: Optional[str] = Field(
        default=None, description="Synthesized corpus answer, passed to classification as a hint"
    )
    from_cache: bool = False

    @property
    def uris(self) -> list[str]:
        return [d.uri for d in self.documents if d.uri]
