"""Tests for the frozen pydantic models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mediaseal.core.hasher import sha256_digest
from mediaseal.models import (
    DigestedArtifact,
    MediaRecord,
    OutcomeKind,
    ProofStatus,
    ProvenanceProof,
    RecordOutcome,
    RecordState,
    RunSummary,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _record(**kw) -> MediaRecord:
    defaults = dict(
        record_id=1,
        url="https://example.org/v",
        download_date=NOW,
        unsigned_locator="videos/v.mp4",
    )
    defaults.update(kw)
    return MediaRecord(**defaults)


class TestMediaRecord:
    def test_pending_state(self):
        assert _record().state == RecordState.PENDING

    def test_signed_state(self):
        record = _record(signed_locator="signed/v.mp4", signature=b"s", signed_at=NOW)
        assert record.state == RecordState.SIGNED

    @pytest.mark.parametrize(
        "partial",
        [
            {"signed_locator": "signed/v.mp4"},
            {"signature": b"s"},
            {"signed_locator": "signed/v.mp4", "signature": b"s"},
            {"signature": b"s", "signed_at": NOW},
        ],
    )
    def test_partial_terminal_set_rejected(self, partial):
        with pytest.raises(ValidationError):
            _record(**partial)

    def test_frozen(self):
        record = _record()
        with pytest.raises(ValidationError):
            record.title = "changed"


class TestDigestedArtifact:
    def test_properties(self):
        artifact = DigestedArtifact(content=b"abc", digest=sha256_digest(b"abc"))
        assert artifact.size_bytes == 3
        assert artifact.digest_hex == sha256_digest(b"abc").hex()
        assert artifact.matches(b"abc") is True
        assert artifact.matches(b"abd") is False
        assert "abc" not in repr(artifact)


class TestProvenanceProof:
    def test_has_proof(self):
        bare = ProvenanceProof(algorithm="ed25519", key_fingerprint="ab", signature=b"s")
        assert bare.has_proof is False
        assert bare.proof_status == ProofStatus.ABSENT
        assert ProvenanceProof(
            algorithm="ed25519", key_fingerprint="ab", signature=b"s", proof=b"p"
        ).has_proof


class TestRunSummary:
    def test_counts(self):
        summary = RunSummary(
            run_id="ms-test",
            outcomes=[
                RecordOutcome(record_id=1, kind=OutcomeKind.SIGNED),
                RecordOutcome(record_id=2, kind=OutcomeKind.SKIPPED),
                RecordOutcome(record_id=3, kind=OutcomeKind.ALREADY_SIGNED),
                RecordOutcome(record_id=4, kind=OutcomeKind.CLAIMED_ELSEWHERE),
                RecordOutcome(record_id=5, kind=OutcomeKind.FAILED, stage="sign"),
            ],
        )
        assert (summary.processed, summary.skipped, summary.failed, summary.total) == (1, 3, 1, 5)
        assert summary.outcome_for(5).stage == "sign"
        assert summary.outcome_for(99) is None
