"""``mediaseal verify RECORD_ID`` — check a signed record end to end.

Fetches the published artifact, recomputes its digest, verifies the
signature with the public key, and checks that any attached timestamp proof
commits to the same digest.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from mediaseal.bridge.crypto_bridge import signer_for
from mediaseal.config import SealConfig
from mediaseal.core.faults import ProvenanceFault
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.pipeline import store_from_config
from mediaseal.core.verifier import verify_record

console = Console()


def _mark(value: bool | None) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    return "[green]valid[/green]" if value else "[red]INVALID[/red]"


def verify_cmd(
    record_id: int = typer.Argument(..., help="Ledger record to verify."),
    public_key: Path = typer.Option(
        None, "--public-key", help="Public key file (defaults to config)."
    ),
) -> None:
    """Verify the signature and timestamp proof of a signed record."""
    config = SealConfig()
    key_path = public_key or config.public_key_path
    try:
        public = Path(key_path).read_bytes()
    except OSError as exc:
        console.print(f"[bold red]Cannot read public key:[/bold red] {exc}")
        raise typer.Exit(code=1)

    try:
        record = MediaLedger(config.ledger_path).get(record_id)
        report = verify_record(
            record,
            store_from_config(config),
            config.signed_bucket,
            signer_for(config.signing_algorithm),
            public,
        )
    except ProvenanceFault as exc:
        console.print(f"[bold red]Verification failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    p = report.provenance
    console.print(
        Panel(
            "\n".join([
                f"[bold]Record:[/bold]       {report.record_id}",
                f"[bold]Artifact:[/bold]     {config.signed_bucket}/{record.signed_locator}",
                f"[bold]SHA-256:[/bold]      {report.digest_hex}",
                f"[bold]Algorithm:[/bold]    {p.algorithm}",
                f"[bold]Key:[/bold]          {p.key_fingerprint}",
                f"[bold]Signature:[/bold]    {_mark(report.signature_valid)}",
                f"[bold]Timestamp:[/bold]    {p.proof_status.value} "
                f"({_mark(report.proof_matches)})",
            ]),
            title="[bold]Provenance[/bold]",
            border_style="green" if report.ok else "red",
            padding=(1, 2),
        )
    )
    if not report.ok:
        raise typer.Exit(code=1)
