"""Tests for the factcheck CLI commands."""

import json

import pytest
import structlog
from loguru import logger
from typer.testing import CliRunner

from proposal_factcheck.cli import main as cli_main
from proposal_factcheck.cli.main import app
from proposal_factcheck.metrics import RunMetrics
from proposal_factcheck.orchestration.schemas import EvaluationReport

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run every command away from any local .env file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOG_FORMAT", "console")
    return tmp_path


@pytest.fixture(autouse=True)
def global_logging(monkeypatch):
    """Keep commands from binding the global loggers to the runner's streams."""
    configured = []
    monkeypatch.setattr(cli_main, "configure_logging", configured.append)
    yield configured
    structlog.reset_defaults()


class TestExpr:
    def test_evaluates_suffixed_amount(self) -> None:
        result = runner.invoke(app, ["expr", "3 * 1.5M"])
        assert result.exit_code == 0
        assert "4500000" in result.output
        assert "3 * 1500000" in result.output

    def test_rejects_malformed_expression(self) -> None:
        result = runner.invoke(app, ["expr", "3 * (2 +"])
        assert result.exit_code == 1


class TestEvaluate:
    def test_missing_credentials_refused(self, monkeypatch, isolated_env) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "")
        proposal = isolated_env / "proposal.json"
        proposal.write_text(json.dumps({"id": "42", "title": "Grants"}))

        result = runner.invoke(app, ["evaluate", str(proposal)])
        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.output

    def test_invalid_proposal_file(self, monkeypatch, isolated_env) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        proposal = isolated_env / "proposal.json"
        proposal.write_text(json.dumps({"title": "no id"}))

        result = runner.invoke(app, ["evaluate", str(proposal)])
        assert result.exit_code == 2

    def test_prints_run_metrics(self, monkeypatch, isolated_env) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        monkeypatch.setenv("RETRIEVAL_BASE_URL", "http://retrieval.test")
        proposal = isolated_env / "proposal.json"
        proposal.write_text(json.dumps({"id": "42", "title": "Grants"}))

        async def fake_evaluate(proposal, settings, audit):
            return EvaluationReport(
                proposal_id=proposal.id,
                metrics=RunMetrics(
                    llm_calls=7,
                    llm_input_tokens=900,
                    llm_output_tokens=120,
                    retrieval_calls=4,
                    documents_evaluated=11,
                ),
            )

        monkeypatch.setattr(cli_main, "_evaluate", fake_evaluate)
        summary = isolated_env / "summary.json"
        result = runner.invoke(app, ["evaluate", str(proposal), "--summary-json", str(summary)])

        assert result.exit_code == 0
        assert "LLM calls 7" in result.output
        assert "retrieval calls 4" in result.output
        assert json.loads(summary.read_text())["metrics"]["documents_evaluated"] == 11


class TestStatus:
    def test_shows_configuration(self, monkeypatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Gemini API" in result.output

    def test_invalid_configuration_exits(self, monkeypatch) -> None:
        monkeypatch.setenv("SIMILARITY_THRESHOLD_FLOOR", "0.9")
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 2


class TestLoggingIsolation:
    def test_commands_configure_logging_once(self, global_logging) -> None:
        runner.invoke(app, ["status"])
        assert len(global_logging) == 1
        assert global_logging[0].log_format == "console"

    def test_structlog_usable_after_command(self, capsys) -> None:
        structlog.reset_defaults()
        runner.invoke(app, ["status"])
        structlog.get_logger().bind(component="CliTest").info("after_command", ok=True)
        logger.bind(component="cli").info("after command")
        assert "after_command" in capsys.readouterr().out
