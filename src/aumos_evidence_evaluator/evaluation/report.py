"""Console rendering of evaluation reports."""

from rich.console import Console
from rich.table import Table

from aumos_evidence_evaluator.evaluation.classifier import BUCKETS, FAILING_BUCKETS
from aumos_evidence_evaluator.evaluation.engine import (
    EvaluationReport,
    EvaluationState,
    TargetOutcome,
)

_STATE_LABELS = {
    EvaluationState.PASSED: "[green]PASSED[/green]",
    EvaluationState.FAILED: "[red]FAILED[/red]",
    EvaluationState.INSUFFICIENT_DATA: "[yellow]INSUFFICIENT DATA[/yellow]",
}


def build_findings_table(outcome: TargetOutcome) -> Table:
    """Build a table listing every classified finding of one target.

    Args:
        outcome: A target outcome that carries a comparison.

    Returns:
        A rich Table with one row per finding, grouped by bucket.
    """
    table = Table(title=f"Findings: {outcome.target}", show_header=True, header_style="bold")
    table.add_column("Bucket", min_width=22)
    table.add_column("Target ID", style="cyan")
    table.add_column("State", justify="center")
    table.add_column("Title")

    if outcome.comparison is None:
        return table
    for bucket in BUCKETS:
        style = "red" if bucket in FAILING_BUCKETS else "green"
        for finding in outcome.comparison.buckets[bucket]:
            table.add_row(f"[{style}]{bucket}[/{style}]", finding.target_id, finding.state, finding.title)
    return table


def _render_outcome(console: Console, outcome: TargetOutcome) -> None:
    label = _STATE_LABELS.get(outcome.state, outcome.state.value)
    console.print(f"[bold]{outcome.target}[/bold]  {label}  {outcome.message}")
    if outcome.threshold_uuid:
        console.print(f"  threshold: {outcome.threshold_uuid}")
    if outcome.latest_uuid:
        console.print(f"  latest:    {outcome.latest_uuid}")
    if outcome.comparison is None:
        return
    for bucket in BUCKETS:
        count = len(outcome.comparison.buckets[bucket])
        if count:
            style = "red" if bucket in FAILING_BUCKETS else "green"
            console.print(f"  [{style}]{bucket}[/{style}]: {count}")


def render_report(report: EvaluationReport, console: Console, summary: bool = False) -> None:
    """Print an evaluation report.

    Args:
        report: The evaluation report.
        console: Where to print.
        summary: Also print a table of classified findings per target.
    """
    if not report.outcomes:
        console.print(f"[red]Error:[/red] {report.message}")
        return

    for outcome in report.outcomes.values():
        _render_outcome(console, outcome)
        if summary and outcome.comparison is not None and not outcome.comparison.is_empty():
            console.print(build_findings_table(outcome))

    for location in report.written:
        console.print(f"[dim]updated {location}[/dim]")
    for failure in report.persistence_failures:
        console.print(f"[red]Error:[/red] could not write {failure.location}: {failure.reason}")

    if report.passed:
        console.print("[green]Evaluation passed[/green]")
    else:
        console.print("[red]Evaluation failed[/red]")
