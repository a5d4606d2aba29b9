"""Evidence acquisition: planning, escalation, expansion, de-duplication and caching."""

from proposal_factcheck.retrieval.cache import EvidenceCache, EvidenceCacheEntry
from proposal_factcheck.retrieval.client import HttpRetrievalClient, RetrievalBackend
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine, dedupe_by_uri
from proposal_factcheck.retrieval.schemas import (
    CorpusAnswer,
    EvidenceBundle,
    EvidenceDocument,
    RetrievalAttempt,
    SearchTool,
)
from proposal_factcheck.retrieval.search_executor import EscalationPolicy, SearchExecutor

__all__ = [
    "CorpusAnswer",
    "EscalationPolicy",
    "EvidenceAcquisitionEngine",
    "EvidenceBundle",
    "EvidenceCache",
    "EvidenceCacheEntry",
    "EvidenceDocument",
    "HttpRetrievalClient",
    "RetrievalAttempt",
    "RetrievalBackend",
    "SearchExecutor",
    "SearchTool",
    "dedupe_by_uri",
]
