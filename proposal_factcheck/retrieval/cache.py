"""Time-to-live cache for evidence acquisition results.

One process-wide store keyed by the normalized (claim, hints) pair. Entries older
than the TTL read as absent; they are overwritten on the next store and never purged
eagerly. Concurrent writers for the same key are not coordinated: the last write
wins, which is acceptable because a recomputed entry is equivalent or better.

Usage:
    cache = EvidenceCache(ttl_seconds=600)
    key = EvidenceCache.make_key(claim_text, hints)
    entry = cache.get(key)
    if entry is None:
        cache.put(key, bundle)
"""

import hashlib
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import structlog

from proposal_factcheck.retrieval.schemas import (
    EvidenceBundle,
    EvidenceDocument,
    RetrievalAttempt,
)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class EvidenceCacheEntry:
    key: str
    documents: tuple[EvidenceDocument, ...]
    attempts: tuple[RetrievalAttempt, ...]
    answer: Optional[str]
    created_at: float


class EvidenceCache:
    """In-memory TTL cache of evidence bundles.

    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, EvidenceCacheEntry] = {}
        self._logger = structlog.get_logger().bind(component="EvidenceCache")

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @staticmethod
    def make_key(claim: str, hints: Iterable[str] = ()) -> str:
        """Normalize claim text and hints into a stable cache key.

        Case, surrounding whitespace, internal whitespace runs and hint order do not
        affect the key.
        """
        normalized_claim = _WHITESPACE.sub(" ", claim.strip().lower())
        normalized_hints = sorted(
            {_WHITESPACE.sub(" ", h.strip().lower()) for h in hints if h and h.strip()}
        )
        material = normalized_claim + "\x1f" + "\x1e".join(normalized_hints)
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def is_expired(self, entry: EvidenceCacheEntry) -> bool:
        return self._clock() - entry.created_at >= self._ttl

    def get(self, key: str) -> Optional[EvidenceCacheEntry]:
        """Return the live entry for ``key``, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.is_expired(entry):
            self._logger.debug("cache_entry_expired", key=key[:12])
            return None
        return entry

    def put(self, key: str, bundle: EvidenceBundle) -> EvidenceCacheEntry:
        """Store ``bundle`` under ``key``, replacing any previous entry."""
        entry = EvidenceCacheEntry(
            key=key,
            documents=tuple(bundle.documents),
            attempts=tuple(bundle.attempts),
            answer=bundle.answer,
            created_at=self._clock(),
        )
        self._entries[key] = entry
        self._logger.debug("cache_entry_stored", key=key[:12], documents=len(entry.documents))
        return entry

    def __len__(self) -> int:
        return len(self._entries)
