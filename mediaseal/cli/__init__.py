"""mediaseal CLI — Typer-based command-line interface.

Provides the ``mediaseal`` command with subcommands for archiving media,
running the signing pipeline, generating keys, inspecting the ledger,
verifying signed records and upgrading timestamp proofs.

All output uses Rich for formatted terminal display.
"""
