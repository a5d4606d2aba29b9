"""Run metrics summed from the counters of the run's collaborators.

Collaborators that keep counters expose ``usage() -> dict[str, int]`` using the
field names of RunMetrics:

- GeminiClient: ``llm_calls``, ``llm_input_tokens``, ``llm_output_tokens``
- HttpRetrievalClient: ``retrieval_calls``
- ClaimClassifier: ``documents_evaluated``

Token counts come from the model's reported usage; calls without usage metadata
count as calls but add no tokens.
"""

from typing import Any

from pydantic import BaseModel


class RunMetrics(BaseModel):
    llm_calls: int = 0
    llm_input_tokens: int = 0
    llm_output_tokens: int = 0
    retrieval_calls: int = 0
    documents_evaluated: int = 0


def collect_metrics(*sources: Any) -> RunMetrics:
    """Sum ``usage()`` counters across ``sources``; sources without one are skipped."""
    totals: dict[str, int] = {name: 0 for name in RunMetrics.model_fields}
    for source in sources:
        usage = getattr(source, "usage", None)
        if usage is None:
            continue
        for name, value in usage().items():
            if name in totals:
                totals[name] += int(value)
    return RunMetrics(**totals)
