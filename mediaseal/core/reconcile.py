"""Proof reconciliation — upgrade absent or pending timestamp proofs.

Signing and anchoring are independently retryable: a record may be signed
with no proof (anchor outage) or with a pending one (calendar acknowledged,
no blockchain attestation yet). This pass, run on operator demand, walks
``MediaLedger.list_unconfirmed()`` and:

- for an absent proof, re-digests the published artifact and submits it;
- for a pending proof, polls the calendars for an upgrade.

Only changed proofs are written back. Faults are per-record and logged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from mediaseal.bridge.anchor_bridge import AnchorClient, proof_status
from mediaseal.config import SealConfig
from mediaseal.core.faults import NotFoundError, ProvenanceFault, StorageFault
from mediaseal.core.hasher import sha256_digest
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.object_store import ObjectStore
from mediaseal.core.retry import RetryPolicy
from mediaseal.models.media import MediaRecord, ProofStatus
from mediaseal.models.reports import ReconcileOutcome

logger = logging.getLogger(__name__)


class ProofReconciler:
    """Upgrade timestamp proofs of already signed records."""

    def __init__(
        self,
        ledger: MediaLedger,
        store: ObjectStore,
        anchor: AnchorClient,
        config: SealConfig | None = None,
        *,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or SealConfig()
        self.ledger = ledger
        self.store = store
        self.anchor = anchor
        self._retry = retry or RetryPolicy(
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )
        self._sleep = sleep

    def proof_locator_for(self, record_id: int) -> str:
        return f"{self.config.proof_prefix}{record_id}{self.config.proof_extension}"

    def run(self) -> list[ReconcileOutcome]:
        """Reconcile every signed record without a complete proof."""
        records = self.ledger.list_unconfirmed()
        logger.info("Reconciling %d unconfirmed proof(s)", len(records))
        return [self.reconcile(record) for record in records]

    def reconcile(self, record: MediaRecord) -> ReconcileOutcome:
        rid = record.record_id
        before = record.proof_status
        try:
            if before == ProofStatus.ABSENT:
                content = self._retry.call(
                    lambda: self.store.get(self.config.signed_bucket, record.signed_locator),
                    describe=f"refetch record {rid}",
                    sleep=self._sleep,
                )
                upgraded = self._retry.call(
                    lambda: self.anchor.submit(sha256_digest(content), record_id=rid),
                    describe=f"anchor record {rid}",
                    sleep=self._sleep,
                )
            else:
                upgraded = self.anchor.poll(record.proof)
        except StorageFault:
            raise
        except ProvenanceFault as exc:
            logger.warning("Record %d [reconcile]: %s", rid, exc)
            return ReconcileOutcome(
                record_id=rid, before=before, after=before, message=str(exc)
            )

        after = proof_status(upgraded)
        if upgraded == record.proof:
            return ReconcileOutcome(record_id=rid, before=before, after=after)

        try:
            self._retry.call(
                lambda: self.store.put(
                    self.config.signed_bucket, self.proof_locator_for(rid), upgraded
                ),
                describe=f"publish proof {rid}",
                sleep=self._sleep,
            )
        except ProvenanceFault as exc:
            logger.warning("Record %d [reconcile]: %s", rid, exc)
            return ReconcileOutcome(
                record_id=rid, before=before, after=before, message=str(exc)
            )
        try:
            self.ledger.update_proof(rid, upgraded)
        except NotFoundError as exc:
            logger.warning("Record %d [reconcile]: %s", rid, exc)
            return ReconcileOutcome(
                record_id=rid, before=before, after=before, message=str(exc)
            )
        logger.info("Record %d: proof %s -> %s", rid, before.value, after.value)
        return ReconcileOutcome(record_id=rid, before=before, after=after, updated=True)
