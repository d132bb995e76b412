"""Anchor bridge — OpenTimestamps calendar client behind ``AnchorClient``.

Bridge boundary
---------------
The pipeline only sees the ``AnchorClient`` protocol:

1. ``submit(digest, record_id=...)`` commits a digest to one or more public
   calendars and returns serialized proof bytes. A fresh proof carries only
   pending attestations.
2. ``poll(proof)`` asks the calendars named in those pending attestations for
   upgrades and returns the merged proof.

Proof bytes use the OpenTimestamps detached-timestamp format (``.ots``), so
``proof_status()`` can tell a pending proof from a complete one by reading
the attestations back out of the persisted bytes.

``NullAnchor`` is used when anchoring is disabled; its ``submit`` always
raises ``AnchorFault`` and the record is signed without a proof.
"""

from __future__ import annotations

import logging
import urllib.error
from collections.abc import Callable, Iterator
from typing import Any, Protocol, runtime_checkable

from opentimestamps.calendar import CommitmentNotFoundError, RemoteCalendar
from opentimestamps.core.notary import PendingAttestation
from opentimestamps.core.op import OpAppend, OpSHA256
from opentimestamps.core.serialize import (
    BytesDeserializationContext,
    BytesSerializationContext,
    DeserializationError,
)
from opentimestamps.core.timestamp import DetachedTimestampFile, Timestamp

from mediaseal.core.faults import AnchorFault, TransientFault
from mediaseal.models.media import ProofStatus

logger = logging.getLogger(__name__)

USER_AGENT = "mediaseal"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class AnchorClient(Protocol):
    """Capability that binds a digest to a public, tamper-evident log."""

    def submit(self, digest: bytes, *, record_id: int) -> bytes:
        """Register *digest* and return serialized proof bytes."""
        ...

    def poll(self, proof: bytes) -> bytes:
        """Return *proof* merged with any attestations that became final."""
        ...


# ---------------------------------------------------------------------------
# Proof encoding
# ---------------------------------------------------------------------------


def serialize_proof(detached: DetachedTimestampFile) -> bytes:
    """Encode a detached timestamp in the binary ``.ots`` format."""
    ctx = BytesSerializationContext()
    detached.serialize(ctx)
    return ctx.getbytes()


def deserialize_proof(proof: bytes) -> DetachedTimestampFile:
    """Decode ``.ots`` bytes; raises ``AnchorFault`` on malformed input."""
    try:
        return DetachedTimestampFile.deserialize(BytesDeserializationContext(proof))
    except (DeserializationError, ValueError, TypeError) as exc:
        raise AnchorFault(f"Malformed timestamp proof: {exc}") from exc


def _walk(timestamp: Timestamp) -> Iterator[Timestamp]:
    """Yield *timestamp* and every timestamp reachable through its ops."""
    yield timestamp
    for child in timestamp.ops.values():
        yield from _walk(child)


def proof_status(proof: bytes | None) -> ProofStatus:
    """Classify persisted proof bytes as absent, pending or complete.

    A proof is complete once any attestation other than a calendar's
    ``PendingAttestation`` (e.g. a Bitcoin block header) is attached.
    Unreadable bytes are never reported as complete.
    """
    if not proof:
        return ProofStatus.ABSENT
    try:
        detached = deserialize_proof(proof)
    except AnchorFault as exc:
        logger.warning("proof_status: %s", exc)
        return ProofStatus.ABSENT

    seen_pending = False
    for stamp in _walk(detached.timestamp):
        for attestation in stamp.attestations:
            if isinstance(attestation, PendingAttestation):
                seen_pending = True
            else:
                return ProofStatus.COMPLETE
    return ProofStatus.PENDING if seen_pending else ProofStatus.ABSENT


def proof_digest(proof: bytes) -> bytes:
    """Return the file digest a proof commits to."""
    return deserialize_proof(proof).file_digest


# ---------------------------------------------------------------------------
# OpenTimestamps client
# ---------------------------------------------------------------------------


class OpenTimestampsAnchor:
    """Submit digests to OpenTimestamps calendar servers.

    Parameters
    ----------
    calendar_urls:
        Calendar endpoints to submit to.
    timeout:
        Per-request timeout in seconds.
    min_responses:
        Number of calendars that must acknowledge a submission.
    calendar_factory:
        Builds a calendar client for a URL. Defaults to ``RemoteCalendar``.
    """

    def __init__(
        self,
        calendar_urls: list[str],
        *,
        timeout: float = 30.0,
        min_responses: int = 1,
        calendar_factory: Callable[[str], Any] | None = None,
    ) -> None:
        if not calendar_urls:
            raise AnchorFault("OpenTimestampsAnchor needs at least one calendar URL")
        self._calendar_urls = list(calendar_urls)
        self._timeout = timeout
        self._min_responses = max(1, min_responses)
        self._calendar_factory = calendar_factory or (
            lambda url: RemoteCalendar(url, user_agent=USER_AGENT)
        )

    @property
    def calendar_urls(self) -> list[str]:
        return list(self._calendar_urls)

    def submit(self, digest: bytes, *, record_id: int) -> bytes:
        """Commit ``sha256(digest || record_id)`` to the configured calendars.

        Raises
        ------
        TransientFault
            If every calendar failed with a network error.
        AnchorFault
            If fewer than ``min_responses`` calendars acknowledged.
        """
        detached = DetachedTimestampFile(OpSHA256(), Timestamp(digest))
        appended = detached.timestamp.ops.add(OpAppend(str(record_id).encode("ascii")))
        commitment = appended.ops.add(OpSHA256())

        responses = 0
        network_errors = 0
        for url in self._calendar_urls:
            try:
                calendar_stamp = self._calendar_factory(url).submit(
                    commitment.msg, timeout=self._timeout
                )
            except (urllib.error.URLError, OSError) as exc:
                network_errors += 1
                logger.warning(
                    "Anchor submit to %s failed for record %d: %s", url, record_id, exc
                )
                continue
            except Exception as exc:
                logger.warning(
                    "Anchor submit to %s rejected record %d: %s", url, record_id, exc
                )
                continue
            commitment.merge(calendar_stamp)
            responses += 1
            logger.debug("Anchor submit to %s accepted record %d", url, record_id)

        if responses < self._min_responses:
            message = (
                f"Only {responses} of {len(self._calendar_urls)} calendars "
                f"acknowledged record {record_id}"
            )
            if network_errors == len(self._calendar_urls):
                raise TransientFault(message, record_id=record_id, stage="anchor")
            raise AnchorFault(message, record_id=record_id, stage="anchor")

        return serialize_proof(detached)

    def poll(self, proof: bytes) -> bytes:
        """Fetch upgrades for every pending attestation in *proof*."""
        detached = deserialize_proof(proof)
        for stamp in list(_walk(detached.timestamp)):
            pending = [
                a for a in stamp.attestations if isinstance(a, PendingAttestation)
            ]
            for attestation in pending:
                try:
                    upgraded = self._calendar_factory(attestation.uri).get_timestamp(
                        stamp.msg, timeout=self._timeout
                    )
                except CommitmentNotFoundError:
                    logger.debug("Calendar %s has no upgrade yet", attestation.uri)
                    continue
                except Exception as exc:
                    logger.warning("Anchor poll of %s failed: %s", attestation.uri, exc)
                    continue
                stamp.merge(upgraded)
        return serialize_proof(detached)


class NullAnchor:
    """Anchoring disabled: records are signed without a timestamp proof."""

    def submit(self, digest: bytes, *, record_id: int) -> bytes:
        raise AnchorFault(
            "Timestamp anchoring is disabled", record_id=record_id, stage="anchor"
        )

    def poll(self, proof: bytes) -> bytes:
        return proof


def build_anchor(
    enabled: bool,
    calendar_urls: list[str],
    *,
    timeout: float = 30.0,
    min_responses: int = 1,
) -> AnchorClient:
    """Return the configured anchor client."""
    if not enabled:
        return NullAnchor()
    return OpenTimestampsAnchor(
        calendar_urls, timeout=timeout, min_responses=min_responses
    )
