"""Provenance pipeline — drives pending records to the signed state.

The pipeline wires together the MediaLedger, an ObjectStore, a Signer with
its KeyHandle, and an AnchorClient. All collaborators are passed in; there
is no module-level client state.

Per record (strictly ordered):
1. Claim a lease on the record.
2. Fetch the artifact from the unsigned bucket (retry on TransientFault).
3. Write it to scratch space and compute its SHA-256 digest.
4. Sign the digest or the raw content, per the signer.
5. Anchor the digest (best-effort; failure leaves the proof absent).
6. Renew the lease. A worker whose lease moved on abandons the record
   without publishing.
7. Publish the artifact and the proof to the signed bucket.
8. ``commit_signed()`` — the single atomic terminal write.
9. Scratch space is removed and the claim released on every exit path.

Per-record faults, scratch I/O errors included, never abort the batch. A
``StorageFault`` from the ledger aborts the run.
"""

from __future__ import annotations

import logging
import tempfile
import time
import uuid
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath

from mediaseal.bridge.anchor_bridge import AnchorClient, build_anchor, proof_status
from mediaseal.bridge.crypto_bridge import Signer, signer_for
from mediaseal.bridge.keys import KeyHandle, load_key_handle
from mediaseal.config import SealConfig
from mediaseal.core.faults import (
    AlreadySignedError,
    FatalFault,
    NotFoundError,
    ProvenanceFault,
    SignerFault,
    StorageFault,
    TransientFault,
)
from mediaseal.core.hasher import sha256_file
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.object_store import ObjectStore, build_object_store
from mediaseal.core.retry import RetryPolicy
from mediaseal.models.media import DigestedArtifact, PendingItem
from mediaseal.models.reports import OutcomeKind, RecordOutcome, RunSummary

logger = logging.getLogger(__name__)

SCRATCH_ARTIFACT = "artifact.bin"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProvenancePipeline:
    """Ledger-driven signing and timestamping pipeline.

    Parameters
    ----------
    ledger:
        Source of truth for which records need processing.
    store:
        Object store holding both the unsigned and the signed bucket.
    signer:
        Signing backend; must match ``key.algorithm``.
    key:
        Key handle borrowed for the duration of each sign call.
    anchor:
        Timestamp anchor client.
    config:
        Bucket names, prefixes, lease length and worker count.
    retry:
        Backoff policy for storage and anchor calls. Built from ``config``
        if not provided.
    clock, sleep:
        Time sources, injectable for tests.
    """

    def __init__(
        self,
        ledger: MediaLedger,
        store: ObjectStore,
        signer: Signer,
        key: KeyHandle,
        anchor: AnchorClient,
        config: SealConfig | None = None,
        *,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        run_id: str | None = None,
    ) -> None:
        self.config = config or SealConfig()
        if key.algorithm != signer.algorithm:
            raise FatalFault(
                f"Key algorithm {key.algorithm!r} does not match signer "
                f"{signer.algorithm!r}"
            )
        self.ledger = ledger
        self.store = store
        self.signer = signer
        self.anchor = anchor
        self._key = key
        self._retry = retry or RetryPolicy(
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )
        self._clock = clock or _utc_now
        self._sleep = sleep

        self._scratch_root = Path(self.config.scratch_dir)
        self._scratch_root.mkdir(parents=True, exist_ok=True)

        ts = _utc_now().strftime("%Y%m%d-%H%M%S")
        self.run_id = run_id or f"ms-{ts}-{uuid.uuid4().hex[:3]}"

    # ------------------------------------------------------------------
    # Locators
    # ------------------------------------------------------------------

    def signed_locator_for(self, unsigned_locator: str) -> str:
        """Same basename under the signed prefix."""
        return f"{self.config.signed_prefix}{PurePosixPath(unsigned_locator).name}"

    def proof_locator_for(self, record_id: int) -> str:
        return f"{self.config.proof_prefix}{record_id}{self.config.proof_extension}"

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run(self) -> RunSummary:
        """Process every pending record once and return the run summary.

        Raises ``StorageFault`` if the ledger becomes unreachable.
        """
        started = _utc_now()
        pending = self.ledger.list_pending()
        logger.info("Run %s: %d pending record(s)", self.run_id, len(pending))

        outcomes: list[RecordOutcome] = []
        workers = max(1, self.config.max_workers)
        if workers == 1 or len(pending) <= 1:
            for item in pending:
                outcomes.append(self.process_record(item))
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="mediaseal"
            ) as pool:
                futures = [pool.submit(self.process_record, item) for item in pending]
                try:
                    for future in futures:
                        outcomes.append(future.result())
                except StorageFault:
                    for future in futures:
                        future.cancel()
                    raise

        summary = RunSummary(
            run_id=self.run_id,
            started_at=started,
            finished_at=_utc_now(),
            outcomes=outcomes,
        )
        logger.info(
            "Run %s finished: %d signed, %d skipped, %d failed",
            self.run_id,
            summary.processed,
            summary.skipped,
            summary.failed,
        )
        return summary

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    def process_record(self, item: PendingItem) -> RecordOutcome:
        """Drive one record from pending to signed."""
        rid = item.record_id
        token = f"{self.run_id}:{uuid.uuid4().hex[:8]}"
        expires_at = self._clock() + timedelta(seconds=self.config.claim_lease_seconds)

        if not self.ledger.claim(rid, token, expires_at):
            logger.info("Record %d is claimed by another worker, skipping", rid)
            return RecordOutcome(
                record_id=rid,
                kind=OutcomeKind.CLAIMED_ELSEWHERE,
                stage="claim",
            )

        try:
            with self._scratch(rid) as scratch:
                return self._drive(item, scratch, token)
        except OSError as exc:
            logger.error("Record %d [scratch]: %s", rid, exc)
            return self._failed(rid, "scratch", exc)
        finally:
            try:
                self.ledger.release_claim(rid, token)
            except StorageFault as exc:
                logger.error("Record %d: could not release claim: %s", rid, exc)

    @contextmanager
    def _scratch(self, record_id: int) -> Iterator[Path]:
        """Per-record scratch directory, removed on every exit path."""
        with tempfile.TemporaryDirectory(
            prefix=f"record-{record_id}-", dir=self._scratch_root
        ) as tmp:
            yield Path(tmp)

    def _failed(
        self, rid: int, stage: str, exc: Exception, kind: OutcomeKind = OutcomeKind.FAILED
    ) -> RecordOutcome:
        return RecordOutcome(record_id=rid, kind=kind, stage=stage, message=str(exc))

    def _drive(self, item: PendingItem, scratch: Path, token: str) -> RecordOutcome:
        rid = item.record_id
        cfg = self.config

        # 2. Fetch
        try:
            content = self._retry.call(
                lambda: self.store.get(cfg.unsigned_bucket, item.unsigned_locator),
                describe=f"fetch record {rid}",
                sleep=self._sleep,
            )
        except NotFoundError as exc:
            logger.warning("Record %d [fetch]: %s", rid, exc)
            return self._failed(rid, "fetch", exc, OutcomeKind.SKIPPED)
        except (TransientFault, FatalFault) as exc:
            logger.error("Record %d [fetch]: %s", rid, exc)
            return self._failed(rid, "fetch", exc)

        # 3. Digest from the scratch copy
        artifact_path = scratch / SCRATCH_ARTIFACT
        try:
            artifact_path.write_bytes(content)
            digest = sha256_file(artifact_path)
        except OSError as exc:
            logger.error("Record %d [digest]: %s", rid, exc)
            return self._failed(rid, "digest", exc)
        artifact = DigestedArtifact(content=content, digest=digest)
        logger.debug(
            "Record %d: %d bytes, sha256=%s", rid, artifact.size_bytes, artifact.digest_hex
        )

        # 4. Sign
        message = artifact.digest if self.signer.signs_digest else artifact.content
        try:
            signature = self.signer.sign(message, self._key)
        except SignerFault as exc:
            logger.error("Record %d [sign]: %s", rid, exc)
            return self._failed(rid, "sign", exc)
        if not signature:
            exc = SignerFault("Signer returned an empty signature")
            logger.error("Record %d [sign]: %s", rid, exc)
            return self._failed(rid, "sign", exc)

        # 5. Anchor (best-effort)
        proof = self._anchor_digest(rid, artifact.digest)
        status = proof_status(proof)
        proof_path = scratch / f"{rid}{cfg.proof_extension}"
        try:
            if proof:
                proof_path.write_bytes(proof)
            published = artifact_path.read_bytes()
            published_proof = proof_path.read_bytes() if proof else None
        except OSError as exc:
            logger.error("Record %d [publish]: %s", rid, exc)
            return self._failed(rid, "publish", exc)
        if not artifact.matches(published):
            exc = ProvenanceFault(
                "Artifact changed between signing and publication",
                record_id=rid,
                stage="publish",
            )
            logger.error("Record %d [publish]: %s", rid, exc)
            return self._failed(rid, "publish", exc)

        # 6. Renew the lease before publishing
        renewed_until = self._clock() + timedelta(seconds=cfg.claim_lease_seconds)
        if not self.ledger.claim(rid, token, renewed_until):
            logger.warning("Record %d: lease lost before publish, abandoning", rid)
            return RecordOutcome(
                record_id=rid,
                kind=OutcomeKind.CLAIMED_ELSEWHERE,
                stage="publish",
                message="Lease lost before publish",
            )

        # 7. Publish artifact and proof
        signed_locator = self.signed_locator_for(item.unsigned_locator)
        try:
            self._put(cfg.signed_bucket, signed_locator, published, f"publish record {rid}")
            if published_proof is not None:
                self._put(
                    cfg.signed_bucket,
                    self.proof_locator_for(rid),
                    published_proof,
                    f"publish proof {rid}",
                )
        except (TransientFault, FatalFault, NotFoundError) as exc:
            logger.error("Record %d [publish]: %s", rid, exc)
            return self._failed(rid, "publish", exc)

        # 8. Commit
        try:
            self.ledger.commit_signed(rid, signed_locator, signature, self._clock(), proof)
        except AlreadySignedError as exc:
            logger.info("Record %d [commit]: %s; treating as no-op", rid, exc)
            return self._failed(rid, "commit", exc, OutcomeKind.ALREADY_SIGNED)
        except NotFoundError as exc:
            logger.warning("Record %d [commit]: %s", rid, exc)
            return self._failed(rid, "commit", exc, OutcomeKind.SKIPPED)

        return RecordOutcome(
            record_id=rid,
            kind=OutcomeKind.SIGNED,
            signed_locator=signed_locator,
            proof_status=status,
        )

    def _put(self, bucket: str, key: str, data: bytes, describe: str) -> None:
        self._retry.call(
            lambda: self.store.put(bucket, key, data), describe=describe, sleep=self._sleep
        )

    def _anchor_digest(self, rid: int, digest: bytes) -> bytes | None:
        try:
            return self._retry.call(
                lambda: self.anchor.submit(digest, record_id=rid),
                describe=f"anchor record {rid}",
                sleep=self._sleep,
            )
        except ProvenanceFault as exc:
            logger.warning(
                "Record %d [anchor]: %s; signing without a timestamp proof", rid, exc
            )
            return None


def store_from_config(config: SealConfig) -> ObjectStore:
    return build_object_store(
        config.storage_backend,
        local_path=config.local_store_path,
        endpoint_url=config.s3_endpoint_url,
        access_key_id=config.s3_access_key_id,
        secret_access_key=config.s3_secret_access_key,
        region=config.s3_region,
        timeout=config.storage_timeout_seconds,
    )


def anchor_from_config(config: SealConfig) -> AnchorClient:
    return build_anchor(
        config.anchor_enabled,
        config.calendar_urls,
        timeout=config.anchor_timeout_seconds,
        min_responses=config.min_calendar_responses,
    )


def build_pipeline(
    config: SealConfig,
    *,
    ledger: MediaLedger | None = None,
    store: ObjectStore | None = None,
    anchor: AnchorClient | None = None,
) -> ProvenancePipeline:
    """Construct a pipeline and its collaborators from configuration.

    Loads the signing key once; raises ``FatalFault`` if it is missing.
    """
    signer = signer_for(config.signing_algorithm)
    key = load_key_handle(signer.algorithm, config.private_key_path, config.public_key_path)
    return ProvenancePipeline(
        ledger or MediaLedger(config.ledger_path),
        store or store_from_config(config),
        signer,
        key,
        anchor or anchor_from_config(config),
        config,
    )
