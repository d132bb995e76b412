"""``mediaseal keygen`` — create the signing key pair once.

An existing private key file is never overwritten.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from mediaseal.bridge.keys import ensure_key_files
from mediaseal.config import SealConfig
from mediaseal.core.faults import ProvenanceFault

console = Console()


def keygen_cmd(
    algorithm: str = typer.Option(
        None, "--algorithm", "-a", help="Signing algorithm (defaults to config)."
    ),
    private_key: Path = typer.Option(
        None, "--private-key", help="Private key path (defaults to config)."
    ),
    public_key: Path = typer.Option(
        None, "--public-key", help="Public key path (defaults to config)."
    ),
) -> None:
    """Generate a signing key pair unless one already exists."""
    config = SealConfig()
    algorithm = algorithm or config.signing_algorithm
    private_key = private_key or config.private_key_path
    public_key = public_key or config.public_key_path

    try:
        handle, created = ensure_key_files(algorithm, private_key, public_key)
    except ProvenanceFault as exc:
        console.print(f"[bold red]Key generation failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    headline = (
        "[bold green]Key pair generated.[/bold green]"
        if created
        else "[bold yellow]Key pair already exists; left unchanged.[/bold yellow]"
    )
    console.print(
        Panel(
            "\n".join([
                headline,
                "",
                f"[bold]Algorithm:[/bold]    {handle.algorithm}",
                f"[bold]Fingerprint:[/bold]  {handle.fingerprint}",
                f"[bold]Private key:[/bold]  {private_key}",
                f"[bold]Public key:[/bold]   {public_key}",
            ]),
            title="[bold]Signing Key[/bold]",
            border_style="green" if created else "yellow",
            padding=(1, 2),
        )
    )
