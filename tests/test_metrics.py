"""Tests for run metrics collection."""

from types import SimpleNamespace

from proposal_factcheck.metrics import RunMetrics, collect_metrics


class TestCollectMetrics:
    def test_sums_across_sources(self) -> None:
        metrics = collect_metrics(
            SimpleNamespace(usage=lambda: {"llm_calls": 2, "llm_input_tokens": 50, "llm_output_tokens": 10}),
            SimpleNamespace(usage=lambda: {"llm_calls": 1}),
            SimpleNamespace(usage=lambda: {"retrieval_calls": 6}),
            SimpleNamespace(usage=lambda: {"documents_evaluated": 12}),
        )
        assert metrics == RunMetrics(
            llm_calls=3,
            llm_input_tokens=50,
            llm_output_tokens=10,
            retrieval_calls=6,
            documents_evaluated=12,
        )

    def test_sources_without_counters_skipped(self) -> None:
        assert collect_metrics(object(), None) == RunMetrics()

    def test_unknown_counters_ignored(self) -> None:
        metrics = collect_metrics(SimpleNamespace(usage=lambda: {"cache_hits": 4, "retrieval_calls": 1}))
        assert metrics.retrieval_calls == 1
        assert "cache_hits" not in metrics.model_dump()
