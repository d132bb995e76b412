"""``mediaseal status`` — show ledger records and their provenance state."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mediaseal.config import SealConfig
from mediaseal.core.faults import StorageFault
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.models.media import ProofStatus, RecordState

console = Console()

_PROOF_STYLE = {
    ProofStatus.ABSENT: "red",
    ProofStatus.PENDING: "yellow",
    ProofStatus.COMPLETE: "green",
}


def status_cmd(
    pending_only: bool = typer.Option(
        False, "--pending", help="Only show records that are not yet signed."
    ),
) -> None:
    """List media records with signing and timestamp state."""
    config = SealConfig()
    try:
        records = MediaLedger(config.ledger_path).list_records()
    except StorageFault as exc:
        console.print(f"[bold red]Ledger unavailable:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if pending_only:
        records = [r for r in records if r.state == RecordState.PENDING]
    if not records:
        console.print("[dim]No records.[/dim]")
        return

    table = Table(title=f"Ledger: {config.ledger_path}")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title", overflow="fold")
    table.add_column("State")
    table.add_column("Proof")
    table.add_column("Signed At")
    for r in records:
        state = (
            "[green]signed[/green]"
            if r.state == RecordState.SIGNED
            else "[yellow]pending[/yellow]"
        )
        style = _PROOF_STYLE[r.proof_status]
        table.add_row(
            str(r.record_id),
            r.title or r.url,
            state,
            f"[{style}]{r.proof_status.value}[/{style}]",
            r.signed_at.isoformat(timespec="seconds") if r.signed_at else "-",
        )
    console.print(table)

    signed = sum(1 for r in records if r.state == RecordState.SIGNED)
    console.print(f"[bold]{signed}[/bold] signed, [bold]{len(records) - signed}[/bold] pending")
