"""Run context shared by the evaluation stages."""

from dataclasses import dataclass, field
from typing import Any, Optional

from proposal_factcheck.audit import AuditSink
from proposal_factcheck.config.settings import Settings
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.orchestration.schemas import StageName
from proposal_factcheck.proposal import Proposal
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine


@dataclass
class RunContext:
    """Everything a stage needs for one proposal evaluation.

    ``outputs`` holds the latest accepted output of each completed stage so later
    stages can build on earlier ones. ``seen_uris`` is the run-scoped set of URIs
    already consumed by claim verification.
    """

    proposal: Proposal
    settings: Settings
    llm: ReasoningClient
    engine: EvidenceAcquisitionEngine
    audit: AuditSink
    outputs: dict[StageName, Any] = field(default_factory=dict)
    seen_uris: set[str] = field(default_factory=set)

    def output_of(self, stage: StageName) -> Optional[Any]:
        return self.outputs.get(stage)

    def schema_name(self, stage: StageName, default: str) -> str:
        return self.settings.stage_schema_names.get(stage.value, default)

    def trace_label(self, stage: StageName, default: str) -> str:
        return self.settings.stage_trace_labels.get(stage.value, default)
