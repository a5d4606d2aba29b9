"""Proposal fact-check CLI using Typer and Rich."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from proposal_factcheck import __version__
from proposal_factcheck.audit import AuditTrail
from proposal_factcheck.config.logging import configure_logging, get_logger
from proposal_factcheck.config.settings import Settings, load_settings
from proposal_factcheck.exceptions import ArithmeticParseError, ConfigurationError
from proposal_factcheck.llm.gemini_client import GeminiClient
from proposal_factcheck.orchestration.context import RunContext
from proposal_factcheck.orchestration.schemas import EvaluationReport, StageName
from proposal_factcheck.orchestration.sequencer import build_sequencer
from proposal_factcheck.proposal import Proposal
from proposal_factcheck.retrieval.client import HttpRetrievalClient
from proposal_factcheck.retrieval.engine import EvidenceAcquisitionEngine
from proposal_factcheck.verification.arithmetic import evaluate as evaluate_expression
from proposal_factcheck.verification.arithmetic import normalize_expression
from proposal_factcheck.verification.schemas import format_number

app = typer.Typer(
    help="Proposal fact-check - evidence-grounded evaluation of governance proposals",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")


def _settings() -> Settings:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Invalid configuration: {e}")
        raise typer.Exit(2)
    configure_logging(settings)
    return settings


def _load_proposal(path: Path) -> Proposal:
    try:
        return Proposal.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]✗[/red] Cannot read {path}: {e}")
        raise typer.Exit(2)
    except ValidationError as e:
        console.print(f"[red]✗[/red] {path} is not a valid proposal:\n{e}")
        raise typer.Exit(2)


async def _evaluate(proposal: Proposal, settings: Settings, audit: AuditTrail) -> EvaluationReport:
    llm = GeminiClient(settings)
    async with HttpRetrievalClient(settings) as retrieval:
        engine = EvidenceAcquisitionEngine(retrieval, llm, settings)
        sequencer = build_sequencer(llm, engine, settings, retrieval=retrieval)
        ctx = RunContext(
            proposal=proposal,
            settings=settings,
            llm=llm,
            engine=engine,
            audit=audit,
        )
        return await sequencer.run(ctx)


def _print_report(report: EvaluationReport) -> None:
    table = Table(title=f"Proposal {report.proposal_id}", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan", width=14)
    table.add_column("Runs", justify="right")
    table.add_column("QA", width=10)
    table.add_column("Confidence", justify="right")
    table.add_column("Notes", style="yellow")

    for name, result in report.stages.items():
        qa = {True: "✓ passed", False: "✗ failed", None: "- n/a"}[result.qa_satisfied]
        confidence = f"{result.confidence:.2f}" if result.confidence is not None else "-"
        table.add_row(name, str(result.runs), qa, confidence, "default output" if result.degraded else "")
    console.print(table)

    facts = report.stage(StageName.FACT_CHECK)
    if facts is not None and facts.output is not None:
        claims = Table(title="Claims", show_header=True, header_style="bold magenta")
        claims.add_column("Status", width=10)
        claims.add_column("Conf.", justify="right")
        claims.add_column("Claim")
        claims.add_column("Citations", style="dim")
        colors = {"supported": "green", "contested": "red", "unknown": "yellow"}
        for verdict in facts.output.claims:
            status = verdict.status.value
            claims.add_row(
                f"[{colors[status]}]{status}[/{colors[status]}]",
                f"{verdict.confidence:.2f}",
                verdict.claim.text,
                "\n".join(verdict.citations),
            )
        console.print(claims)

    console.print(f"\n[bold]Recommendation:[/bold] {report.recommendation or 'none'}")

    if report.metrics is not None:
        m = report.metrics
        console.print(
            f"[dim]LLM calls {m.llm_calls} (tokens in {m.llm_input_tokens}, out {m.llm_output_tokens})[/dim]"
        )
        console.print(
            f"[dim]retrieval calls {m.retrieval_calls}, documents evaluated {m.documents_evaluated}[/dim]"
        )


@app.command()
def evaluate(
    proposal_json: Path = typer.Argument(..., help="Path to a proposal JSON file"),
    summary_json: Optional[Path] = typer.Option(None, help="Write the evaluation report here"),
    trace_json: Optional[Path] = typer.Option(None, help="Write the audit trail here"),
) -> None:
    """
    Evaluate a proposal through planning, fact check, reasoning, challenge and adjudication.

    Args:
        proposal_json: Proposal file with id, title, description and payload
        summary_json: Optional output path for the EvaluationReport
        trace_json: Optional output path for the audit trail
    """
    settings = _settings()
    try:
        settings.require_credentials()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {e}")
        logger.error(f"Refusing to run: {e}")
        raise typer.Exit(1)

    proposal = _load_proposal(proposal_json)
    audit = AuditTrail(proposal_id=proposal.id)
    logger.info(f"Evaluating proposal {proposal.id} from {proposal_json}")

    report = asyncio.run(_evaluate(proposal, settings, audit))
    _print_report(report)

    if summary_json is not None:
        summary_json.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"[dim]Report written to {summary_json}[/dim]")
    if trace_json is not None:
        trace_json.write_text(json.dumps(audit.to_dict(), indent=2), encoding="utf-8")
        console.print(f"[dim]Audit trail ({len(audit)} steps) written to {trace_json}[/dim]")


@app.command()
def expr(expression: str = typer.Argument(..., help="Arithmetic expression, e.g. '3 * 1.5M'")) -> None:
    """Evaluate an arithmetic expression with the local evaluator."""
    console.print(f"[dim]Normalized: {normalize_expression(expression)}[/dim]")
    try:
        value = evaluate_expression(expression)
    except ArithmeticParseError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[bold green]{format_number(value)}[/bold green]")


@app.command()
def status() -> None:
    """
    Display configuration.

    Shows credentials, models, retrieval scope and verification bounds.
    """
    settings = _settings()
    logger.info("Displaying configuration")

    table = Table(title="Proposal Fact-check Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", width=20)
    table.add_column("Status", style="green", width=16)
    table.add_column("Details", style="yellow")

    python_version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    table.add_row("Environment", "✓ Ready", f"{python_version}, proposal-factcheck {__version__}")

    api_status = "✓ Configured" if settings.gemini_api_key else "⚠ Not Configured"
    table.add_row(
        "Gemini API",
        api_status,
        f"{settings.gemini_model} (hard: {settings.model_for('hard')}, timeout {settings.llm_timeout_seconds:g}s)",
    )
    table.add_row(
        "Retrieval",
        "✓ Configured" if settings.retrieval_base_url else "⚠ Not Configured",
        f"{settings.retrieval_base_url} sources={','.join(settings.retrieval_sources)}",
    )
    table.add_row(
        "Escalation",
        "✓ Active",
        f"threshold {settings.similarity_threshold_default} → floor {settings.similarity_threshold_floor}",
    )
    table.add_row(
        "Verification",
        "✓ Active",
        f"{settings.fact_max_iterations} rounds, confidence ≥ {settings.fact_min_confidence}, "
        f"concurrency {settings.retrieval_concurrency}",
    )
    table.add_row("Logging", "✓ Active", f"Level: {settings.log_level}, Format: {settings.log_format}")

    console.print(table)


if __name__ == "__main__":
    app()
