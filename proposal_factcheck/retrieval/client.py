"""Retrieval collaborator: protocol plus an httpx implementation.

The engine only depends on ``RetrievalBackend``. ``HttpRetrievalClient`` talks to a
JSON-over-HTTP search service exposing keyword, vector (RAG), hybrid, official-doc
answer and raw-discussion endpoints. Transient failures are retried with tenacity;
once retries are exhausted a ``RetrievalError`` is raised for the caller to absorb.

Usage:
    async with HttpRetrievalClient(settings) as client:
        docs = await client.search(SearchTool.HYBRID, "grant budget", limit=6,
                                   similarity_threshold=0.4)
"""

import re
from typing import Any, Optional, Protocol, Sequence

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proposal_factcheck.config.settings import Settings
from proposal_factcheck.exceptions import RetrievalError
from proposal_factcheck.retrieval.schemas import CorpusAnswer, EvidenceDocument, SearchTool

_ENDPOINTS = {
    SearchTool.KEYWORD: "/keywordSearch",
    SearchTool.VECTOR: "/ragSearch",
    SearchTool.HYBRID: "/hybridSearch",
}
_TRAILING_NUMBER = re.compile(r"(\d+)(?!.*\d)")


class RetrievalBackend(Protocol):
    """Abstract search, raw-content and corpus-answer operations."""

    async def search(
        self,
        tool: SearchTool,
        query: str,
        limit: int,
        similarity_threshold: Optional[float] = None,
        source_filters: Sequence[str] = (),
        type_filters: Sequence[str] = (),
    ) -> list[EvidenceDocument]:
        ...

    async def fetch_raw_content(self, source_ref: str) -> str:
        ...

    async def answer_from_corpus(self, query: str, realtime: bool = False) -> CorpusAnswer:
        ...


def map_item_to_document(item: dict[str, Any]) -> EvidenceDocument:
    """Convert a raw search-service item into an EvidenceDocument."""
    raw_id = item.get("id") or item.get("sha") or item.get("title") or item.get("sourceUrl") or ""
    score = item.get("score")
    return EvidenceDocument(
        id=str(raw_id),
        title=item.get("title") or (str(item["id"]) if item.get("id") is not None else None),
        uri=item.get("sourceUrl") or item.get("appUrl") or None,
        snippet=item.get("tldr") or item.get("headline") or item.get("digest") or None,
        source_kind=item.get("type") or item.get("protocol") or "unknown",
        relevance_score=float(score) if isinstance(score, (int, float)) else None,
    )


class HttpRetrievalClient:
    """
    Async HTTP client for the search service.

    Attributes:
        calls: Number of HTTP requests made, including retries
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings
        headers = {"content-type": "application/json"}
        if settings.retrieval_api_key:
            headers["x-api-key"] = settings.retrieval_api_key
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.retrieval_base_url,
            headers=headers,
            timeout=httpx.Timeout(settings.retrieval_timeout_seconds),
        )
        self.calls = 0
        self._logger = structlog.get_logger().bind(component="HttpRetrievalClient")

    def usage(self) -> dict[str, int]:
        return {"retrieval_calls": self.calls}

    async def __aenter__(self) -> "HttpRetrievalClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST with retry; returns the ``result`` object of the response envelope."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.retrieval_max_attempts),
            wait=wait_exponential(multiplier=self._settings.retrieval_backoff_seconds, max=10),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self.calls += 1
                    response = await self._client.post(path, json=body)
                    response.raise_for_status()
                    data = response.json()
        except httpx.HTTPError as e:
            self._logger.warning("retrieval_request_failed", path=path, error=str(e))
            raise RetrievalError(f"{path} failed: {e}") from e
        except ValueError as e:
            raise RetrievalError(f"{path} returned invalid JSON: {e}") from e

        result = data.get("result") if isinstance(data, dict) else None
        return result if isinstance(result, dict) else {}

    async def search(
        self,
        tool: SearchTool,
        query: str,
        limit: int,
        similarity_threshold: Optional[float] = None,
        source_filters: Sequence[str] = (),
        type_filters: Sequence[str] = (),
    ) -> list[EvidenceDocument]:
        """Run one keyword, vector or hybrid search.

        Raises:
            ValueError: If ``tool`` is not a document search tool.
            RetrievalError: If the request fails after retries.
        """
        path = _ENDPOINTS.get(SearchTool(tool))
        if path is None:
            raise ValueError(f"{tool} is not a document search tool")

        body: dict[str, Any] = {
            "query": query,
            "protocols": list(source_filters),
            "itemTypes": list(type_filters),
            "limit": limit,
        }
        if tool == SearchTool.KEYWORD:
            body["sortByRelevance"] = True
        else:
            body["similarityThreshold"] = (
                similarity_threshold
                if similarity_threshold is not None
                else self._settings.similarity_threshold_default
            )

        result = await self._post(path, body)
        documents = [map_item_to_document(it) for it in result.get("results") or [] if isinstance(it, dict)]
        self._logger.info(
            "search_executed",
            tool=SearchTool(tool).value,
            query=query[:80],
            results=len(documents),
        )
        return documents

    async def fetch_raw_content(self, source_ref: str) -> str:
        """Fetch the full raw text of a discussion thread by URL."""
        match = _TRAILING_NUMBER.search(source_ref)
        if not match:
            raise RetrievalError(f"Cannot derive a thread id from {source_ref!r}")
        body = {"discussionUrl": source_ref, "topicId": match.group(1), "minimumUnix": 0}
        result = await self._post("/rawPosts", body)
        return str(result.get("rawPosts") or "")

    async def answer_from_corpus(self, query: str, realtime: bool = False) -> CorpusAnswer:
        """Synthesize an answer from official documentation, with citations."""
        body = {
            "query": query,
            "protocols": list(self._settings.retrieval_sources),
            "limit": self._settings.retrieval_default_limit,
            "similarityThreshold": self._settings.similarity_threshold_default,
            "realtime": realtime,
        }
        result = await self._post("/officialDocSearch", body)
        citations = [map_item_to_document(it) for it in result.get("results") or [] if isinstance(it, dict)]
        return CorpusAnswer(answer=str(result.get("answer") or ""), citations=citations)
