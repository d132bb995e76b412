"""Adversarial tests: inject a fault at every pipeline step.

Whatever step fails, a record must end either fully pending (no terminal
field set) or fully signed, claims must be released, scratch space removed,
and a later clean run must finish the job exactly once.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from mediaseal.core.faults import (
    AnchorFault,
    FatalFault,
    SignerFault,
    StorageFault,
    TransientFault,
)
from mediaseal.models.media import RecordState
from mediaseal.models.reports import OutcomeKind


class _Injector:
    """Store/signer/anchor proxy that raises at one named step."""

    def __init__(self, store, signer, anchor, *, step: str, exc: BaseException):
        self.store, self.signer, self.anchor = store, signer, anchor
        self.step = step
        self.exc = exc
        self.algorithm = signer.algorithm
        self.signs_digest = signer.signs_digest

    def _maybe(self, step: str) -> None:
        if step == self.step:
            raise self.exc

    # ObjectStore
    def get(self, bucket, key):
        self._maybe("fetch")
        return self.store.get(bucket, key)

    def put(self, bucket, key, data):
        self._maybe("publish-proof" if key.endswith(".ots") else "publish-artifact")
        return self.store.put(bucket, key, data)

    def exists(self, bucket, key):
        return self.store.exists(bucket, key)

    # Signer
    def sign(self, message, key):
        self._maybe("sign")
        return self.signer.sign(message, key)

    def verify(self, message, signature, public_key):
        return self.signer.verify(message, signature, public_key)

    def generate_keypair(self):
        return self.signer.generate_keypair()

    # AnchorClient
    def submit(self, digest, *, record_id):
        self._maybe("anchor")
        return self.anchor.submit(digest, record_id=record_id)

    def poll(self, proof):
        return self.anchor.poll(proof)


def _assert_all_or_nothing(ledger) -> None:
    for record in ledger.list_records():
        fields = [record.signed_locator, record.signature, record.signed_at]
        assert all(f is None for f in fields) or all(f is not None for f in fields)


STEP_FAULTS = [
    ("fetch", TransientFault("503 from storage")),
    ("fetch", FatalFault("AccessDenied")),
    ("sign", SignerFault("HSM unavailable")),
    ("anchor", AnchorFault("calendar rejected")),
    ("anchor", TransientFault("calendar timeout")),
    ("publish-artifact", TransientFault("connection reset")),
    ("publish-artifact", FatalFault("bucket policy")),
    ("publish-proof", FatalFault("bucket policy")),
]


@pytest.mark.parametrize("step,exc", STEP_FAULTS, ids=[f"{s}-{type(e).__name__}" for s, e in STEP_FAULTS])
def test_fault_at_step_preserves_invariants(
    step, exc, make_pipeline, seed, ledger, store, signer, anchor, seal_config, clock
):
    rid = seed("victim.mp4", b"0123456789")
    injector = _Injector(store, signer, anchor, step=step, exc=exc)
    summary = make_pipeline(store=injector, signer=injector, anchor=injector).run()

    _assert_all_or_nothing(ledger)
    outcome = summary.outcome_for(rid)
    if step == "anchor":
        assert outcome.kind == OutcomeKind.SIGNED
        assert ledger.get(rid).proof is None
    else:
        assert outcome.kind == OutcomeKind.FAILED
        assert ledger.get(rid).state == RecordState.PENDING

    # Claim released and scratch cleaned on the failure path.
    if step != "anchor":
        assert ledger.claim(rid, "probe", clock() + timedelta(seconds=1))
        ledger.release_claim(rid, "probe")
    assert list(seal_config.scratch_dir.iterdir()) == []

    # A clean follow-up run completes the record exactly once.
    make_pipeline().run()
    record = ledger.get(rid)
    assert record.state == RecordState.SIGNED
    assert store.get(seal_config.signed_bucket, record.signed_locator) == b"0123456789"


def test_crash_between_publish_and_commit_is_recoverable(
    make_pipeline, seed, ledger, store, seal_config, monkeypatch
):
    """Objects already published; the process dies before commit_signed."""
    rid = seed("crash.mp4", b"crash-bytes")
    original_commit = ledger.commit_signed

    def _die(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(ledger, "commit_signed", _die)
    with pytest.raises(KeyboardInterrupt):
        make_pipeline().run()

    assert ledger.get(rid).state == RecordState.PENDING
    assert store.exists(seal_config.signed_bucket, "signed/crash.mp4")
    assert list(seal_config.scratch_dir.iterdir()) == []

    monkeypatch.setattr(ledger, "commit_signed", original_commit)
    summary = make_pipeline().run()
    assert summary.outcome_for(rid).kind == OutcomeKind.SIGNED
    assert store.get(seal_config.signed_bucket, "signed/crash.mp4") == b"crash-bytes"


def test_interrupt_during_sign_releases_claim(make_pipeline, seed, ledger, store, signer, anchor, clock):
    rid = seed()
    injector = _Injector(store, signer, anchor, step="sign", exc=KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        make_pipeline(store=injector, signer=injector, anchor=injector).run()
    assert ledger.claim(rid, "next-run", clock() + timedelta(minutes=1)) is True


def test_commit_storage_fault_leaves_record_pending(make_pipeline, seed, ledger, monkeypatch):
    rid = seed()

    def _locked(*args, **kwargs):
        raise StorageFault("database is locked")

    monkeypatch.setattr(ledger, "commit_signed", _locked)
    with pytest.raises(StorageFault):
        make_pipeline().run()
    _assert_all_or_nothing(ledger)
    assert ledger.get(rid).state == RecordState.PENDING


def test_one_bad_record_does_not_abort_batch(make_pipeline, seed, ledger):
    good_a = seed("a.mp4", b"a")
    ledger.register("https://example.org/missing", None, "videos/missing.mp4")
    good_b = seed("b.mp4", b"b")
    summary = make_pipeline().run()
    assert summary.processed == 2
    assert summary.skipped == 1
    assert ledger.get(good_a).state == RecordState.SIGNED
    assert ledger.get(good_b).state == RecordState.SIGNED
