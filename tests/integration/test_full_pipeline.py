"""Integration tests — the full pipeline over a real ledger file, a
directory-backed object store and on-disk Ed25519 keys.

Scenarios:
- A: one pending 10-byte object is signed and published byte-for-byte.
- B: a transient fetch failure is retried and the record still signs.
- C: the anchor is unreachable throughout; the record signs without a proof.
- Idempotence: a second run with nothing pending uploads and writes nothing.
- Acquisition through signing through verification and proof upgrade.
"""

from __future__ import annotations

import json
import subprocess

import pytest

from mediaseal.bridge.acquisition import MediaAcquirer
from mediaseal.bridge.crypto_bridge import signer_for
from mediaseal.bridge.keys import ensure_key_files
from mediaseal.core.faults import TransientFault
from mediaseal.core.hasher import sha256_digest
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.object_store import LocalObjectStore
from mediaseal.core.pipeline import build_pipeline, store_from_config
from mediaseal.core.reconcile import ProofReconciler
from mediaseal.core.verifier import verify_record
from mediaseal.models.media import ProofStatus, RecordState
from mediaseal.models.reports import OutcomeKind


class _FlakyOnce:
    """Object store whose first ``get`` raises a transient fault."""

    def __init__(self, inner):
        self.inner = inner
        self.gets = 0

    def get(self, bucket, key):
        self.gets += 1
        if self.gets == 1:
            raise TransientFault("503 Slow Down")
        return self.inner.get(bucket, key)

    def put(self, bucket, key, data):
        return self.inner.put(bucket, key, data)

    def exists(self, bucket, key):
        return self.inner.exists(bucket, key)


class _CountingLedger(MediaLedger):
    """MediaLedger that counts write calls."""

    writes = 0

    def claim(self, *args, **kwargs):
        type(self).writes += 1
        return super().claim(*args, **kwargs)

    def commit_signed(self, *args, **kwargs):
        type(self).writes += 1
        return super().commit_signed(*args, **kwargs)


@pytest.fixture
def env(seal_config):
    """Keys on disk, a file-backed ledger and a directory-backed store."""
    ensure_key_files(
        seal_config.signing_algorithm, seal_config.private_key_path, seal_config.public_key_path
    )
    ledger = MediaLedger(seal_config.ledger_path)
    store = store_from_config(seal_config)
    assert isinstance(store, LocalObjectStore)
    return seal_config, ledger, store


def _register(ledger, store, config, name: str, content: bytes) -> int:
    locator = f"{config.unsigned_prefix}{name}"
    store.put(config.unsigned_bucket, locator, content)
    return ledger.register(f"https://archive.example/{name}", name, locator)


class TestScenarios:
    def test_scenario_a_ten_byte_object(self, env):
        config, ledger, store = env
        rid = _register(ledger, store, config, "ten.mp4", b"0123456789")

        summary = build_pipeline(config, ledger=ledger).run()

        assert summary.outcome_for(rid).kind == OutcomeKind.SIGNED
        record = ledger.get(rid)
        assert record.signed_locator == "signed/ten.mp4"
        assert record.signature
        assert store.get(config.signed_bucket, "signed/ten.mp4") == b"0123456789"

    def test_scenario_b_transient_fetch_retried(self, env, make_anchor):
        config, ledger, store = env
        rid = _register(ledger, store, config, "flaky.mp4", b"flaky-bytes")
        flaky = _FlakyOnce(store)

        summary = build_pipeline(config, ledger=ledger, store=flaky, anchor=make_anchor()).run()

        assert flaky.gets == 2
        assert summary.outcome_for(rid).kind == OutcomeKind.SIGNED
        assert ledger.get(rid).state == RecordState.SIGNED

    def test_scenario_c_anchor_unreachable(self, env, make_anchor):
        config, ledger, store = env
        rid = _register(ledger, store, config, "noanchor.mp4", b"bytes")
        down = make_anchor(fail_with=TransientFault("calendar unreachable"))

        summary = build_pipeline(config, ledger=ledger, anchor=down).run()

        assert summary.outcome_for(rid).kind == OutcomeKind.SIGNED
        record = ledger.get(rid)
        assert record.signature
        assert record.proof_status == ProofStatus.ABSENT
        assert not store.exists(config.signed_bucket, f"timestamps/{rid}.ots")


class TestProperties:
    def test_idempotent_second_run(self, env, make_anchor):
        config, _, store = env
        ledger = _CountingLedger(config.ledger_path)
        _register(ledger, store, config, "a.mp4", b"a-bytes")
        _register(ledger, store, config, "b.mp4", b"b-bytes")
        build_pipeline(config, ledger=ledger, anchor=make_anchor()).run()

        signed_before = {
            p.name: p.read_bytes() for p in (config.local_store_path / config.signed_bucket).rglob("*")
            if p.is_file()
        }
        _CountingLedger.writes = 0

        for _ in range(2):
            summary = build_pipeline(config, ledger=ledger, anchor=make_anchor()).run()
            assert summary.total == 0

        assert _CountingLedger.writes == 0
        signed_after = {
            p.name: p.read_bytes() for p in (config.local_store_path / config.signed_bucket).rglob("*")
            if p.is_file()
        }
        assert signed_after == signed_before

    def test_content_fidelity(self, env, make_anchor):
        config, ledger, store = env
        payload = bytes(range(256)) * 1024
        rid = _register(ledger, store, config, "big.bin", payload)
        build_pipeline(config, ledger=ledger, anchor=make_anchor()).run()

        record = ledger.get(rid)
        published = store.get(config.signed_bucket, record.signed_locator)
        assert published == payload
        public_key = config.public_key_path.read_bytes()
        assert signer_for(config.signing_algorithm).verify(
            sha256_digest(published), record.signature, public_key
        )

    def test_scratch_is_empty_after_run(self, env):
        config, ledger, store = env
        for n in range(3):
            _register(ledger, store, config, f"{n}.mp4", b"x" * n)
        build_pipeline(config, ledger=ledger).run()
        assert list(config.scratch_dir.iterdir()) == []


class TestEndToEnd:
    def test_acquire_sign_verify_upgrade(self, env, make_anchor, retry):
        config, ledger, store = env

        def _fake_ytdlp(cmd):
            (config.downloads_dir / "vid123.mp4").write_bytes(b"archived footage")
            info = {"id": "vid123", "title": "Archived", "ext": "mp4"}
            return subprocess.CompletedProcess(cmd, 0, json.dumps(info), "")

        media = MediaAcquirer(ledger, store, config, runner=_fake_ytdlp, retry=retry).acquire(
            "https://video.example/watch?v=vid123"
        )
        anchor = make_anchor()
        build_pipeline(config, ledger=ledger, anchor=anchor).run()

        record = ledger.get(media.record_id)
        assert record.signed_locator == "signed/vid123.mp4"
        assert record.proof_status == ProofStatus.PENDING

        signer = signer_for(config.signing_algorithm)
        report = verify_record(
            record, store, config.signed_bucket, signer, config.public_key_path.read_bytes()
        )
        assert report.ok

        outcomes = ProofReconciler(ledger, store, anchor, config, retry=retry).run()
        assert [o.after for o in outcomes] == [ProofStatus.COMPLETE]
        assert ledger.get(media.record_id).proof_status == ProofStatus.COMPLETE
        assert ledger.list_unconfirmed() == []
