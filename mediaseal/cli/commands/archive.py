"""``mediaseal archive URL`` — download, register and sign a media item.

Runs ``yt-dlp`` on the URL, uploads the file to the unsigned bucket,
registers a pending ledger record and then runs the signing pipeline
(unless ``--no-sign``).
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel

from mediaseal.bridge.acquisition import MediaAcquirer
from mediaseal.cli.commands.sign import print_run_summary, run_pipeline
from mediaseal.config import SealConfig
from mediaseal.core.faults import ProvenanceFault
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.pipeline import store_from_config

console = Console()


def archive_cmd(
    url: str = typer.Argument(..., help="Media URL understood by yt-dlp."),
    sign: bool = typer.Option(
        True,
        "--sign/--no-sign",
        help="Run the signing pipeline after registration.",
    ),
) -> None:
    """Archive a media URL and queue it for provenance signing."""
    config = SealConfig()
    try:
        acquirer = MediaAcquirer(
            MediaLedger(config.ledger_path), store_from_config(config), config
        )
        media = acquirer.acquire(url)
    except ProvenanceFault as exc:
        console.print(f"[bold red]Archive failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                "[bold green]Media registered![/bold green]",
                "",
                f"[bold]Record:[/bold]   {media.record_id}",
                f"[bold]Title:[/bold]    {media.title or '-'}",
                f"[bold]Locator:[/bold]  {config.unsigned_bucket}/{media.unsigned_locator}",
            ]),
            title="[bold]mediaseal[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )

    if not sign:
        return
    summary = run_pipeline(config)
    print_run_summary(summary)
    if summary.failed:
        raise typer.Exit(code=1)
