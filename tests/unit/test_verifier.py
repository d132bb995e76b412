"""Tests for offline record verification."""

from __future__ import annotations

import pytest

from mediaseal.core.faults import AnchorFault, NotFoundError
from mediaseal.core.verifier import verify_record


class TestVerifyRecord:
    def test_signed_record_verifies(self, make_pipeline, seed, ledger, store, signer, key, seal_config):
        rid = seed("v.mp4", b"verified-bytes")
        make_pipeline().run()
        report = verify_record(
            ledger.get(rid), store, seal_config.signed_bucket, signer, key.public_key
        )
        assert report.ok is True
        assert report.signature_valid is True
        assert report.proof_matches is True
        assert report.provenance.key_fingerprint == key.fingerprint
        assert report.provenance.has_proof

    def test_tampered_artifact_detected(self, make_pipeline, seed, ledger, store, signer, key, seal_config):
        rid = seed("t.mp4", b"original")
        make_pipeline().run()
        store.put(seal_config.signed_bucket, "signed/t.mp4", b"tampered")
        report = verify_record(
            ledger.get(rid), store, seal_config.signed_bucket, signer, key.public_key
        )
        assert report.signature_valid is False
        assert report.proof_matches is False
        assert report.ok is False

    def test_no_proof_is_not_a_failure(self, make_pipeline, seed, ledger, store, signer, key, seal_config, make_anchor):
        rid = seed()
        make_pipeline(anchor=make_anchor(fail_with=AnchorFault("off"))).run()
        report = verify_record(
            ledger.get(rid), store, seal_config.signed_bucket, signer, key.public_key
        )
        assert report.proof_matches is None
        assert report.ok is True

    def test_pending_record_rejected(self, seed, ledger, store, signer, key, seal_config):
        rid = seed()
        with pytest.raises(NotFoundError):
            verify_record(ledger.get(rid), store, seal_config.signed_bucket, signer, key.public_key)
