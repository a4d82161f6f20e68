"""aumos-evaluate: evaluate assessment-results artifacts against their thresholds."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console

from aumos_evidence_evaluator import __version__
from aumos_evidence_evaluator.artifacts.recorder import FileEvidenceProducer, record_evidence
from aumos_evidence_evaluator.artifacts.store import ArtifactStore
from aumos_evidence_evaluator.errors import EvaluatorError, MalformedArtifactError
from aumos_evidence_evaluator.evaluation.engine import (
    EvaluationEngine,
    EvaluationReport,
    evaluate_locations,
)
from aumos_evidence_evaluator.evaluation.report import render_report
from aumos_evidence_evaluator.observability import configure_logging, get_logger
from aumos_evidence_evaluator.settings import Settings, get_settings

console = Console(soft_wrap=True)
logger = get_logger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_MALFORMED = 2
EXIT_WRITE_FAILED = 3


def exit_code_for(report: EvaluationReport) -> int:
    """Map an evaluation report to the process exit code."""
    if not report.passed:
        return EXIT_FAILED
    if report.persistence_failures:
        return EXIT_WRITE_FAILED
    return EXIT_PASSED


def _store_for(settings: Settings) -> ArtifactStore:
    return ArtifactStore(fetch_timeout_seconds=settings.remote_fetch_timeout_seconds)


# ── Commands ───────────────────────────────────────────────────────────────


@click.group(context_settings={"max_content_width": 120})
@click.version_option(version=__version__, prog_name="aumos-evaluate")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Minimum log level (default: AUMOS_EVALUATOR_LOG_LEVEL or INFO)",
)
@click.option("--log-json", is_flag=True, default=False, help="Emit logs as JSON lines on stderr")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, log_json: bool) -> None:
    """Evaluate compliance evidence against established thresholds."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_output=log_json or settings.log_json)
    logger.debug("Evaluator configured", service=settings.service_name, default_target=settings.default_target)
    ctx.obj = settings


@main.command()
@click.option(
    "--file",
    "-f",
    "files",
    multiple=True,
    help="Assessment results artifact path or URL (repeatable)",
)
@click.option("--summary", is_flag=True, help="Print a table of classified findings per target")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_obj
def evaluate(settings: Settings, files: tuple[str, ...], summary: bool, as_json: bool) -> None:
    """Compare the latest results with the threshold for every target.

    Threshold markers are updated in the artifacts that changed. Files
    evaluated together share their targets.
    """
    if not files:
        console.print("[red]Error:[/red] no files provided for evaluation (use -f)")
        sys.exit(EXIT_MALFORMED)

    engine = EvaluationEngine(settings)
    try:
        report = asyncio.run(evaluate_locations(list(files), _store_for(settings), engine))
    except EvaluatorError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        sys.exit(EXIT_MALFORMED)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        render_report(report, console, summary=summary)
    sys.exit(exit_code_for(report))


@main.command()
@click.option(
    "--findings",
    "-f",
    "findings_path",
    required=True,
    type=click.Path(dir_okay=False),
    help="JSON or YAML mapping of target-id to state",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    required=True,
    help="Assessment results artifact to create or merge into",
)
@click.option("--target", "-t", default=None, help="Target name stamped on the new result")
@click.pass_obj
def record(settings: Settings, findings_path: str, output_path: str, target: str | None) -> None:
    """Record a new result from a findings file."""
    producer = FileEvidenceProducer(findings_path)
    try:
        artifact = asyncio.run(
            record_evidence(_store_for(settings), output_path, producer, target=target, settings=settings)
        )
    except MalformedArtifactError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        sys.exit(EXIT_MALFORMED)
    except EvaluatorError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        sys.exit(EXIT_FAILED)

    console.print(f"[green]Recorded[/green] result in {output_path} ({len(artifact.results)} results)")


if __name__ == "__main__":
    main()
