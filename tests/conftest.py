"""Shared test fixtures for mediaseal."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from opentimestamps.core.notary import BitcoinBlockHeaderAttestation, PendingAttestation
from opentimestamps.core.op import OpAppend, OpSHA256
from opentimestamps.core.timestamp import DetachedTimestampFile, Timestamp

from mediaseal.bridge.anchor_bridge import deserialize_proof, serialize_proof
from mediaseal.bridge.crypto_bridge import Ed25519Signer
from mediaseal.bridge.keys import KeyHandle
from mediaseal.config import SealConfig
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.object_store import InMemoryObjectStore
from mediaseal.core.pipeline import ProvenancePipeline
from mediaseal.core.retry import RetryPolicy

CALENDAR_URL = "https://calendar.example.org"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_proof(
    digest: bytes, record_id: int = 1, *, complete: bool = False, calendar: str = CALENDAR_URL
) -> bytes:
    """Offline .ots proof shaped like a calendar submission."""
    detached = DetachedTimestampFile(OpSHA256(), Timestamp(digest))
    appended = detached.timestamp.ops.add(OpAppend(str(record_id).encode("ascii")))
    commitment = appended.ops.add(OpSHA256())
    commitment.attestations.add(PendingAttestation(calendar))
    if complete:
        commitment.attestations.add(BitcoinBlockHeaderAttestation(840000))
    return serialize_proof(detached)


class FakeAnchor:
    """AnchorClient double that issues pending proofs offline."""

    def __init__(self, *, fail_with: Exception | None = None, complete_on_poll: bool = True):
        self.fail_with = fail_with
        self.complete_on_poll = complete_on_poll
        self.submitted: list[tuple[bytes, int]] = []
        self.polled: list[bytes] = []
        self._record_ids: dict[bytes, int] = {}

    def submit(self, digest: bytes, *, record_id: int) -> bytes:
        self.submitted.append((digest, record_id))
        self._record_ids[digest] = record_id
        if self.fail_with is not None:
            raise self.fail_with
        return build_proof(digest, record_id)

    def poll(self, proof: bytes) -> bytes:
        self.polled.append(proof)
        if not self.complete_on_poll:
            return proof
        digest = deserialize_proof(proof).file_digest
        return build_proof(digest, self._record_ids.get(digest, 1), complete=True)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seal_config(tmp_dir: Path) -> SealConfig:
    """SealConfig isolated from the environment, pointing into tmp_dir."""
    return SealConfig(
        _env_file=None,
        ledger_path=tmp_dir / "historical_media.db",
        scratch_dir=tmp_dir / "scratch",
        downloads_dir=tmp_dir / "downloads",
        storage_backend="local",
        local_store_path=tmp_dir / "buckets",
        signing_algorithm="ed25519",
        private_key_path=tmp_dir / "keys" / "private.key",
        public_key_path=tmp_dir / "keys" / "public.key",
        anchor_enabled=False,
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )


@pytest.fixture
def ledger(seal_config: SealConfig, clock: FakeClock) -> MediaLedger:
    """Provide a fresh MediaLedger backed by a temp SQLite database."""
    return MediaLedger(seal_config.ledger_path, clock=clock)


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def signer() -> Ed25519Signer:
    return Ed25519Signer()


@pytest.fixture
def key(signer: Ed25519Signer) -> KeyHandle:
    private_key, public_key = signer.generate_keypair()
    return KeyHandle(algorithm=signer.algorithm, public_key=public_key, private_key=private_key)


@pytest.fixture
def anchor() -> FakeAnchor:
    return FakeAnchor()


@pytest.fixture
def retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def make_pipeline(
    ledger: MediaLedger,
    store: InMemoryObjectStore,
    signer: Ed25519Signer,
    key: KeyHandle,
    anchor: FakeAnchor,
    seal_config: SealConfig,
    retry: RetryPolicy,
    clock: FakeClock,
) -> Callable[..., ProvenancePipeline]:
    """Factory fixture: build a ProvenancePipeline wired to test doubles."""

    def _factory(**overrides: Any) -> ProvenancePipeline:
        defaults: dict[str, Any] = {
            "ledger": ledger,
            "store": store,
            "signer": signer,
            "key": key,
            "anchor": anchor,
            "config": seal_config,
            "retry": retry,
            "clock": clock,
            "sleep": lambda _: None,
        }
        defaults.update(overrides)
        return ProvenancePipeline(**defaults)

    return _factory


@pytest.fixture
def seed(
    ledger: MediaLedger, store: InMemoryObjectStore, seal_config: SealConfig
) -> Callable[..., int]:
    """Factory fixture: upload an unsigned artifact and register it."""

    def _factory(name: str = "clip.mp4", content: bytes = b"video-bytes", **kw: Any) -> int:
        locator = f"{seal_config.unsigned_prefix}{name}"
        store.put(seal_config.unsigned_bucket, locator, content)
        return ledger.register(kw.get("url", f"https://example.org/{name}"), kw.get("title"), locator)

    return _factory


@pytest.fixture
def make_proof() -> Callable[..., bytes]:
    """Factory fixture: offline pending (or complete) .ots proof bytes."""
    return build_proof


@pytest.fixture
def make_anchor() -> Callable[..., FakeAnchor]:
    """Factory fixture: configurable FakeAnchor."""
    return FakeAnchor
