"""mediaseal data models — all Pydantic v2, all frozen (immutable)."""

from mediaseal.models.media import (
    DigestedArtifact,
    MediaRecord,
    PendingItem,
    ProofStatus,
    ProvenanceProof,
    RecordState,
)
from mediaseal.models.reports import (
    OutcomeKind,
    ReconcileOutcome,
    RecordOutcome,
    RunSummary,
)

__all__ = [
    # media
    "MediaRecord",
    "PendingItem",
    "DigestedArtifact",
    "ProvenanceProof",
    "ProofStatus",
    "RecordState",
    # reports
    "OutcomeKind",
    "RecordOutcome",
    "RunSummary",
    "ReconcileOutcome",
]
