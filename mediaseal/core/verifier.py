"""Offline verification of a signed record.

Re-fetches the published artifact, recomputes its digest, checks the
signature against a public key and, if a proof is attached, checks that the
proof commits to the same digest.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict

from mediaseal.bridge.anchor_bridge import proof_digest
from mediaseal.bridge.crypto_bridge import Signer
from mediaseal.core.faults import AnchorFault, NotFoundError
from mediaseal.core.hasher import key_fingerprint, sha256_digest
from mediaseal.core.object_store import ObjectStore
from mediaseal.models.media import MediaRecord, ProvenanceProof, RecordState

logger = logging.getLogger(__name__)


class VerificationReport(BaseModel):
    """Outcome of verifying one record."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    provenance: ProvenanceProof
    digest_hex: str
    signature_valid: bool
    proof_matches: bool | None = None  # None when no proof is attached

    @property
    def ok(self) -> bool:
        return self.signature_valid and self.proof_matches is not False


def verify_record(
    record: MediaRecord,
    store: ObjectStore,
    bucket: str,
    signer: Signer,
    public_key: bytes,
) -> VerificationReport:
    """Verify the published artifact of a signed *record*.

    Raises
    ------
    NotFoundError
        If the record is not signed or its artifact is missing.
    """
    if record.state != RecordState.SIGNED:
        raise NotFoundError(
            f"Record {record.record_id} is not signed",
            record_id=record.record_id,
            stage="verify",
        )

    content = store.get(bucket, record.signed_locator)
    digest = sha256_digest(content)
    message = digest if signer.signs_digest else content
    signature_valid = signer.verify(message, record.signature, public_key)

    proof_matches: bool | None = None
    if record.proof:
        try:
            proof_matches = proof_digest(record.proof) == digest
        except AnchorFault as exc:
            logger.warning("Record %d: %s", record.record_id, exc)
            proof_matches = False

    provenance = ProvenanceProof(
        algorithm=signer.algorithm,
        key_fingerprint=key_fingerprint(public_key),
        signature=record.signature,
        proof=record.proof,
        proof_status=record.proof_status,
    )
    logger.info(
        "Record %d verified: signature=%s proof=%s",
        record.record_id,
        signature_valid,
        proof_matches,
    )
    return VerificationReport(
        record_id=record.record_id,
        provenance=provenance,
        digest_hex=digest.hex(),
        signature_valid=signature_valid,
        proof_matches=proof_matches,
    )
