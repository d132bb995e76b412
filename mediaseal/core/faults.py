"""Fault taxonomy shared by the ledger, storage, signing and anchoring layers.

Propagation rules
-----------------
- ``TransientFault``: network / 5xx-class; retried with capped backoff.
- ``FatalFault``: auth, permission or configuration; never retried.
- ``NotFoundError``: missing object or record; the record is skipped.
- ``AlreadySignedError``: benign duplicate commit; treated as a no-op.
- ``SignerFault``: key or library failure; the record is aborted.
- ``AnchorFault``: best-effort; the record proceeds without a proof.
- ``StorageFault``: ledger write/read failure.

Per-record faults never abort a batch. A ``StorageFault`` raised while
listing pending work aborts the run.
"""

from __future__ import annotations

from typing import Any


class ProvenanceFault(RuntimeError):
    """Base class for every fault raised by mediaseal."""

    def __init__(
        self,
        message: str,
        *,
        record_id: int | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.record_id = record_id
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        """Convert the fault to a loggable dictionary."""
        return {
            "fault": type(self).__name__,
            "message": self.message,
            "record_id": self.record_id,
            "stage": self.stage,
        }


class TransientFault(ProvenanceFault):
    """Retryable failure of an external service."""


class FatalFault(ProvenanceFault):
    """Non-retryable failure: credentials, permissions, configuration."""


class NotFoundError(ProvenanceFault):
    """A ledger record or stored object does not exist."""


class AlreadySignedError(ProvenanceFault):
    """The record already carries its terminal fields."""


class SignerFault(ProvenanceFault):
    """The signing backend failed (corrupt key, library error)."""


class AnchorFault(ProvenanceFault):
    """The timestamp anchor could not produce a proof."""


class StorageFault(ProvenanceFault):
    """The ledger database is unreachable or rejected a write."""
