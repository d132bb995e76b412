"""Media record and provenance models.

A ``MediaRecord`` moves from PENDING to SIGNED exactly once. The terminal
fields ``signed_locator``, ``signature`` and ``signed_at`` are written
together or not at all; the proof may still be absent or pending after the
record is signed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mediaseal.core.hasher import sha256_hex


class RecordState(str, Enum):
    """Provenance state of a media record."""

    PENDING = "pending"
    SIGNED = "signed"


class ProofStatus(str, Enum):
    """Completeness of a timestamp proof.

    ``PENDING`` means the calendar acknowledged the commitment but no
    blockchain attestation is attached yet.
    """

    ABSENT = "absent"
    PENDING = "pending"
    COMPLETE = "complete"


class MediaRecord(BaseModel):
    """One archived artifact under provenance."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    url: str
    title: str | None = None
    download_date: datetime
    unsigned_locator: str
    signed_locator: str | None = None
    signature: bytes | None = None
    signed_at: datetime | None = None
    proof: bytes | None = None
    proof_status: ProofStatus = ProofStatus.ABSENT

    @model_validator(mode="after")
    def _terminal_fields_all_or_nothing(self) -> MediaRecord:
        present = [
            self.signed_locator is not None,
            self.signature is not None,
            self.signed_at is not None,
        ]
        if any(present) and not all(present):
            raise ValueError(
                f"Record {self.record_id} has a partial terminal field set"
            )
        return self

    @property
    def state(self) -> RecordState:
        if self.signed_locator is None:
            return RecordState.PENDING
        return RecordState.SIGNED


class PendingItem(BaseModel):
    """A record awaiting signing, as returned by ``MediaLedger.list_pending``."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    unsigned_locator: str


class DigestedArtifact(BaseModel):
    """Artifact bytes and their digest; lives for one pipeline iteration."""

    model_config = ConfigDict(frozen=True)

    content: bytes = Field(repr=False)
    digest: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def digest_hex(self) -> str:
        return self.digest.hex()

    def matches(self, data: bytes) -> bool:
        """True if *data* hashes to this artifact's digest."""
        return sha256_hex(data) == self.digest_hex


class ProvenanceProof(BaseModel):
    """Signature plus timestamp proof, published as one unit."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    key_fingerprint: str
    signature: bytes
    proof: bytes | None = None
    proof_status: ProofStatus = ProofStatus.ABSENT

    @property
    def has_proof(self) -> bool:
        return bool(self.proof)
