"""``mediaseal upgrade-proofs`` — complete absent or pending timestamp proofs."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mediaseal.config import SealConfig
from mediaseal.core.faults import ProvenanceFault
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.pipeline import anchor_from_config, store_from_config
from mediaseal.core.reconcile import ProofReconciler

console = Console()


def upgrade_proofs_cmd() -> None:
    """Submit missing proofs and poll calendars for pending ones."""
    config = SealConfig()
    if not config.anchor_enabled:
        console.print("[bold yellow]Anchoring is disabled; nothing to do.[/bold yellow]")
        return

    try:
        reconciler = ProofReconciler(
            MediaLedger(config.ledger_path),
            store_from_config(config),
            anchor_from_config(config),
            config,
        )
        outcomes = reconciler.run()
    except ProvenanceFault as exc:
        console.print(f"[bold red]Reconciliation aborted:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not outcomes:
        console.print("[dim]All proofs are complete.[/dim]")
        return

    table = Table(title="Timestamp Proofs")
    table.add_column("Record", justify="right", style="cyan")
    table.add_column("Before")
    table.add_column("After")
    table.add_column("Updated", justify="center")
    table.add_column("Detail", overflow="fold")
    for o in outcomes:
        table.add_row(
            str(o.record_id),
            o.before.value,
            o.after.value,
            "[green]Yes[/green]" if o.updated else "[dim]No[/dim]",
            o.message,
        )
    console.print(table)
