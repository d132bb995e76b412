"""Main Typer application — imports and registers all CLI commands.

Entry point: ``mediaseal`` (configured via pyproject.toml console scripts).

Commands: archive, sign, keygen, status, verify, upgrade-proofs.
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from mediaseal.cli.commands.archive import archive_cmd
from mediaseal.cli.commands.keygen import keygen_cmd
from mediaseal.cli.commands.sign import sign_cmd
from mediaseal.cli.commands.status import status_cmd
from mediaseal.cli.commands.upgrade_proofs import upgrade_proofs_cmd
from mediaseal.cli.commands.verify import verify_cmd
from mediaseal.config import SealConfig

app = typer.Typer(
    name="mediaseal",
    help="mediaseal: signing and timestamping provenance for archived media.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option(
        None, "--log-level", help="Override MEDIASEAL_LOG_LEVEL."
    ),
) -> None:
    """Install the Rich log handler before any command runs."""
    level = (log_level or SealConfig().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="archive", help="Download a URL, register it and sign it.")(archive_cmd)
app.command(name="sign", help="Sign and timestamp all pending records.")(sign_cmd)
app.command(name="keygen", help="Generate the signing key pair (once).")(keygen_cmd)
app.command(name="status", help="Show ledger records and proof state.")(status_cmd)
app.command(name="verify", help="Verify a signed record.")(verify_cmd)
app.command(name="upgrade-proofs", help="Upgrade absent or pending proofs.")(upgrade_proofs_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
