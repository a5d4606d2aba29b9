"""Append-only audit trail of evaluation steps.

Every stage run, QA check, confidence score and notable degradation is recorded as
a step with a generated id and an ISO-8601 UTC timestamp. Steps are never edited or
removed once appended.

Usage:
    trail = AuditTrail(proposal_id="42", agent_id="delegate-1")
    step_id = trail.append_step("planning", "Planner produced plan", output=plan)
    payload = trail.to_dict()
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

StepType = Literal[
    "planning",
    "fact_check",
    "reasoning",
    "challenge",
    "adjudication",
    "qa",
    "score",
    "analysis",
    "tool_call",
    "decision",
]


class Reference(BaseModel):
    uri: str
    description: Optional[str] = None


class AuditStep(BaseModel):
    id: str
    timestamp: str
    type: StepType
    description: str
    input: Any = None
    output: Any = None
    references: list[Reference] = Field(default_factory=list)

    model_config = {"frozen": True}


class AuditSink(Protocol):
    def append_step(
        self,
        step_type: StepType,
        description: str,
        input: Any = None,
        output: Any = None,
        references: Optional[Sequence[str]] = None,
    ) -> str:
        ...


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


class AuditTrail:
    """In-memory append-only audit trail for one proposal evaluation."""

    def __init__(self, proposal_id: str, agent_id: str = "proposal-factcheck") -> None:
        self.proposal_id = proposal_id
        self.agent_id = agent_id
        self.created_at = datetime.now(timezone.utc).isoformat()
        self._steps: list[AuditStep] = []

    def append_step(
        self,
        step_type: StepType,
        description: str,
        input: Any = None,
        output: Any = None,
        references: Optional[Sequence[str]] = None,
    ) -> str:
        step = AuditStep(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            type=step_type,
            description=description,
            input=_jsonable(input),
            output=_jsonable(output),
            references=[Reference(uri=uri) for uri in references or [] if uri],
        )
        self._steps.append(step)
        return step.id

    @property
    def steps(self) -> tuple[AuditStep, ...]:
        return tuple(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "agent_id": self.agent_id,
            "created_at": self.created_at,
            "steps": [s.model_dump(mode="json") for s in self._steps],
        }
