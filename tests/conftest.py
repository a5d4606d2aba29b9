"""Shared fakes for the reasoning and retrieval collaborators."""

from typing import Any, Callable, Optional, Sequence

import pytest

from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import GenerationError
from proposal_factcheck.llm.structured import Schema, validate_and_prune
from proposal_factcheck.retrieval.schemas import CorpusAnswer, EvidenceDocument, SearchTool


class FakeLLM:
    """ReasoningClient double that answers by ``schema_name``.

    A scripted response may be a value, a list of values consumed in order (the last
    one repeats), an exception instance to raise, or a callable taking the user
    prompt. Unscripted schema names raise GenerationError, which every caller treats
    as a collaborator failure. Responses go through ``validate_and_prune`` so they
    look exactly like real decoded output.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[dict[str, Any]] = []

    async def extract_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: Schema,
        *,
        schema_name: str,
        max_output_tokens: int = 4000,
        difficulty: Optional[str] = None,
    ) -> Any:
        self.calls.append(
            {"schema_name": schema_name, "user_prompt": user_prompt, "difficulty": difficulty}
        )
        if schema_name not in self.responses:
            raise GenerationError(f"no scripted response for {schema_name}")

        response = self.responses[schema_name]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if callable(response):
            response = response(user_prompt)
        if isinstance(response, Exception):
            raise response
        return validate_and_prune(schema, response)

    def calls_for(self, schema_name: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["schema_name"] == schema_name]


class FakeRetrieval:
    """RetrievalBackend double with per-tool scripted results.

    ``results`` maps a tool value to a document list, an exception, or a callable
    ``(query, similarity_threshold, filtered) -> list``.
    """

    def __init__(
        self,
        results: Optional[dict[str, Any]] = None,
        raw_content: str = "",
        corpus_answer: Optional[CorpusAnswer] = None,
    ) -> None:
        self.results: dict[str, Any] = dict(results or {})
        self.raw_content = raw_content
        self.corpus_answer = corpus_answer or CorpusAnswer()
        self.searches: list[dict[str, Any]] = []
        self.raw_fetches: list[str] = []
        self.corpus_queries: list[dict[str, Any]] = []

    async def search(
        self,
        tool: SearchTool,
        query: str,
        limit: int,
        similarity_threshold: Optional[float] = None,
        source_filters: Sequence[str] = (),
        type_filters: Sequence[str] = (),
    ) -> list[EvidenceDocument]:
        tool = SearchTool(tool)
        filtered = bool(source_filters or type_filters)
        self.searches.append(
            {
                "tool": tool,
                "query": query,
                "limit": limit,
                "similarity_threshold": similarity_threshold,
                "filtered": filtered,
            }
        )
        result = self.results.get(tool.value, [])
        if callable(result):
            result = result(query, similarity_threshold, filtered)
        if isinstance(result, Exception):
            raise result
        return list(result)[:limit]

    async def fetch_raw_content(self, source_ref: str) -> str:
        self.raw_fetches.append(source_ref)
        return self.raw_content

    async def answer_from_corpus(self, query: str, realtime: bool = False) -> CorpusAnswer:
        self.corpus_queries.append({"query": query, "realtime": realtime})
        return self.corpus_answer


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    return Settings(
        gemini_api_key="test-key",
        query_rewrite_enabled=False,
        llm_backoff_seconds=0.0,
        retrieval_backoff_seconds=0.0,
        log_format="console",
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_retrieval() -> FakeRetrieval:
    return FakeRetrieval()


@pytest.fixture
def llm_factory() -> Callable[..., FakeLLM]:
    return FakeLLM


@pytest.fixture
def retrieval_factory() -> Callable[..., FakeRetrieval]:
    return FakeRetrieval


@pytest.fixture
def make_doc() -> Callable[..., EvidenceDocument]:
    def _make(
        doc_id: str,
        uri: Optional[str] = "auto",
        kind: str = "discussion",
        snippet: str = "Evidence text.",
    ) -> EvidenceDocument:
        return EvidenceDocument(
            id=doc_id,
            title=f"Doc {doc_id}",
            uri=f"https://gov.example.org/t/{doc_id}" if uri == "auto" else uri,
            snippet=snippet,
            source_kind=kind,
        )

    return _make
