"""Per-record outcomes and the end-of-run summary."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from mediaseal.models.media import ProofStatus


class OutcomeKind(str, Enum):
    """How a single record left the pipeline."""

    SIGNED = "signed"
    SKIPPED = "skipped"
    FAILED = "failed"
    ALREADY_SIGNED = "already_signed"
    CLAIMED_ELSEWHERE = "claimed_elsewhere"


class RecordOutcome(BaseModel):
    """Result of driving one record through the pipeline."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    kind: OutcomeKind
    stage: str = ""  # stage where processing stopped, if not signed
    message: str = ""
    signed_locator: str | None = None
    proof_status: ProofStatus = ProofStatus.ABSENT


class RunSummary(BaseModel):
    """Batch totals reported at the end of a pipeline run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    outcomes: list[RecordOutcome] = []

    def _count(self, *kinds: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.kind in kinds)

    @property
    def processed(self) -> int:
        """Records that ended in the signed state during this run."""
        return self._count(OutcomeKind.SIGNED)

    @property
    def skipped(self) -> int:
        return self._count(
            OutcomeKind.SKIPPED,
            OutcomeKind.ALREADY_SIGNED,
            OutcomeKind.CLAIMED_ELSEWHERE,
        )

    @property
    def failed(self) -> int:
        return self._count(OutcomeKind.FAILED)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def outcome_for(self, record_id: int) -> RecordOutcome | None:
        for outcome in self.outcomes:
            if outcome.record_id == record_id:
                return outcome
        return None


class ReconcileOutcome(BaseModel):
    """Result of one proof upgrade attempt."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    before: ProofStatus
    after: ProofStatus
    updated: bool = False
    message: str = ""
