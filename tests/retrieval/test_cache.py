"""Tests for the evidence TTL cache."""

from proposal_factcheck.retrieval.cache import EvidenceCache
from proposal_factcheck.retrieval.schemas import EvidenceBundle, EvidenceDocument


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _bundle(*ids: str) -> EvidenceBundle:
    return EvidenceBundle(
        documents=[EvidenceDocument(id=i, uri=f"https://example.org/{i}") for i in ids]
    )


class TestMakeKey:
    def test_normalizes_case_and_whitespace(self) -> None:
        assert EvidenceCache.make_key("  Grant  Budget is 1M ") == EvidenceCache.make_key("grant budget is 1m")

    def test_hint_order_irrelevant(self) -> None:
        assert EvidenceCache.make_key("c", ["b", "a"]) == EvidenceCache.make_key("c", ["a", "b", "a"])

    def test_hints_change_key(self) -> None:
        assert EvidenceCache.make_key("c", ["a"]) != EvidenceCache.make_key("c")


class TestEvidenceCache:
    def test_put_then_get(self) -> None:
        cache = EvidenceCache(ttl_seconds=600, clock=FakeClock())
        key = EvidenceCache.make_key("claim")
        cache.put(key, _bundle("a", "b"))
        entry = cache.get(key)
        assert entry is not None
        assert [d.id for d in entry.documents] == ["a", "b"]
        assert len(cache) == 1

    def test_expires_at_ttl(self) -> None:
        clock = FakeClock()
        cache = EvidenceCache(ttl_seconds=600, clock=clock)
        key = EvidenceCache.make_key("claim")
        entry = cache.put(key, _bundle("a"))
        clock.now += 599
        assert cache.get(key) is not None
        clock.now += 1
        assert cache.is_expired(entry)
        assert cache.get(key) is None

    def test_last_writer_wins(self) -> None:
        cache = EvidenceCache(clock=FakeClock())
        key = EvidenceCache.make_key("claim")
        cache.put(key, _bundle("a"))
        cache.put(key, _bundle("b"))
        assert [d.id for d in cache.get(key).documents] == ["b"]

    def test_missing_key(self) -> None:
        assert EvidenceCache().get("nope") is None
