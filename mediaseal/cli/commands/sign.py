"""``mediaseal sign`` — run the provenance pipeline over all pending records.

Loads the signing key, claims each pending record, signs, anchors and
publishes it, and prints the run summary.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mediaseal.config import SealConfig
from mediaseal.core.faults import ProvenanceFault
from mediaseal.core.pipeline import build_pipeline
from mediaseal.core.production_guard import (
    ProductionConfigError,
    enforce_production_constraints,
)
from mediaseal.models.reports import OutcomeKind, RunSummary

console = Console()

_KIND_STYLE = {
    OutcomeKind.SIGNED: "green",
    OutcomeKind.SKIPPED: "yellow",
    OutcomeKind.ALREADY_SIGNED: "dim",
    OutcomeKind.CLAIMED_ELSEWHERE: "dim",
    OutcomeKind.FAILED: "red",
}


def print_run_summary(summary: RunSummary) -> None:
    """Render per-record outcomes and the batch totals."""
    if summary.outcomes:
        table = Table(title=f"Run {summary.run_id}")
        table.add_column("Record", justify="right", style="cyan")
        table.add_column("Outcome")
        table.add_column("Stage")
        table.add_column("Proof")
        table.add_column("Detail", overflow="fold")
        for o in summary.outcomes:
            style = _KIND_STYLE.get(o.kind, "white")
            table.add_row(
                str(o.record_id),
                f"[{style}]{o.kind.value}[/{style}]",
                o.stage or "-",
                o.proof_status.value if o.kind == OutcomeKind.SIGNED else "-",
                o.signed_locator or o.message or "",
            )
        console.print(table)
    else:
        console.print("[dim]No pending records.[/dim]")

    console.print(
        f"[bold]Processed:[/bold] {summary.processed}  "
        f"[bold]Skipped:[/bold] {summary.skipped}  "
        f"[bold]Failed:[/bold] {summary.failed}"
    )


def run_pipeline(config: SealConfig) -> RunSummary:
    """Build the pipeline from *config* and run it; exits on setup failure."""
    try:
        enforce_production_constraints(config)
        pipeline = build_pipeline(config)
    except (ProductionConfigError, ProvenanceFault) as exc:
        console.print(f"[bold red]Cannot start pipeline:[/bold red] {exc}")
        raise typer.Exit(code=1)

    try:
        return pipeline.run()
    except ProvenanceFault as exc:
        console.print(f"[bold red]Run aborted:[/bold red] {exc}")
        raise typer.Exit(code=1)


def sign_cmd() -> None:
    """Sign and timestamp every pending record in the ledger.

    Exits with code 1 if any record failed; skipped records are not errors.
    """
    summary = run_pipeline(SealConfig())
    print_run_summary(summary)
    if summary.failed:
        raise typer.Exit(code=1)
