"""Tests for the append-only AuditTrail."""

from datetime import datetime

from proposal_factcheck.audit import AuditTrail
from proposal_factcheck.orchestration.schemas import PlanningOutput


class TestAuditTrail:
    def test_append_returns_unique_ids(self) -> None:
        trail = AuditTrail(proposal_id="42")
        first = trail.append_step("planning", "Planner produced plan")
        second = trail.append_step("qa", "QA for planning")
        assert first != second
        assert len(trail) == 2

    def test_timestamps_are_iso_utc(self) -> None:
        trail = AuditTrail(proposal_id="42")
        trail.append_step("analysis", "Built seed corpus")
        parsed = datetime.fromisoformat(trail.steps[0].timestamp)
        assert parsed.utcoffset().total_seconds() == 0

    def test_models_and_references_serialized(self) -> None:
        trail = AuditTrail(proposal_id="42", agent_id="delegate-1")
        trail.append_step(
            "planning",
            "Planner produced plan",
            input={"run": 1},
            output=PlanningOutput(objectives=["Assess"]),
            references=["https://gov.example.org/t/1", ""],
        )
        payload = trail.to_dict()
        assert payload["proposal_id"] == "42"
        assert payload["agent_id"] == "delegate-1"
        step = payload["steps"][0]
        assert step["type"] == "planning"
        assert step["output"]["objectives"] == ["Assess"]
        assert step["references"] == [{"uri": "https://gov.example.org/t/1", "description": None}]

    def test_steps_are_a_snapshot(self) -> None:
        trail = AuditTrail(proposal_id="42")
        trail.append_step("score", "Scored planning")
        steps = trail.steps
        trail.append_step("score", "Scored reasoning")
        assert len(steps) == 1
