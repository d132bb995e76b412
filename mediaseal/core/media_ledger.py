"""Media ledger backed by SQLite — the single source of truth for provenance.

Design:
- One row per archived artifact in table ``media``.
- ``commit_signed()`` is the only terminal write: one IMMEDIATE transaction
  sets ``signed_locator``, ``signature``, ``signed_at`` and ``proof`` together.
- Claims (``claim_token`` + ``claim_expires_at``) give one worker a
  time-bounded exclusive right to process a pending record.
- WAL journal mode with ``synchronous=FULL``: a successful return means the
  write is on disk.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path

from mediaseal.bridge.anchor_bridge import proof_status
from mediaseal.core.faults import AlreadySignedError, NotFoundError, StorageFault
from mediaseal.models.media import MediaRecord, PendingItem, ProofStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_MEDIA = """
CREATE TABLE IF NOT EXISTS media (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    url               TEXT NOT NULL,
    title             TEXT,
    download_date     TEXT NOT NULL,
    unsigned_locator  TEXT NOT NULL,
    signed_locator    TEXT,
    signature         BLOB,
    signed_at         TEXT,
    proof             BLOB,
    claim_token       TEXT,
    claim_expires_at  TEXT
);
"""

_CREATE_IDX_PENDING = """
CREATE INDEX IF NOT EXISTS idx_media_pending ON media(signed_locator, id);
"""

_SELECT_COLUMNS = (
    "id, url, title, download_date, unsigned_locator, "
    "signed_locator, signature, signed_at, proof"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO-8601 so timestamps compare lexically in SQL."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class MediaLedger:
    """Durable table of media records and their provenance state.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    clock:
        Source of "now" for registration dates and claim expiry checks.
    busy_timeout:
        Seconds a writer waits on a locked database before failing.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Callable[[], datetime] | None = None,
        busy_timeout: float = 30.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._clock = clock or _utc_now
        self._busy_timeout = busy_timeout
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageFault(f"Cannot create ledger directory: {exc}") from exc
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; multi-statement writes open their own transaction.
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=FULL")
        return conn

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, translating sqlite errors into ``StorageFault``."""
        try:
            with closing(self._connect()) as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageFault(f"Ledger {operation} failed: {exc}") from exc

    def _init_schema(self) -> None:
        with self._session("schema init") as conn:
            conn.execute(_CREATE_MEDIA)
            conn.execute(_CREATE_IDX_PENDING)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, url: str, title: str | None, unsigned_locator: str) -> int:
        """Insert a new pending record and return its id."""
        with self._session("register") as conn:
            cur = conn.execute(
                "INSERT INTO media (url, title, download_date, unsigned_locator) "
                "VALUES (?, ?, ?, ?)",
                (url, title, _ts(self._clock()), unsigned_locator),
            )
            record_id = int(cur.lastrowid)
        logger.info("Registered record %d (%s)", record_id, unsigned_locator)
        return record_id

    # ------------------------------------------------------------------
    # Pending work
    # ------------------------------------------------------------------

    def list_pending(self) -> list[PendingItem]:
        """Return every record whose terminal fields are absent, by id.

        A single SELECT: records registered after the call began are not
        guaranteed to appear.
        """
        with self._session("list_pending") as conn:
            rows = conn.execute(
                "SELECT id, unsigned_locator FROM media "
                "WHERE signed_locator IS NULL ORDER BY id ASC"
            ).fetchall()
        return [PendingItem(record_id=row[0], unsigned_locator=row[1]) for row in rows]

    def claim(self, record_id: int, token: str, expires_at: datetime) -> bool:
        """Take a lease on a pending record.

        Succeeds when the record is pending and either unclaimed, claimed by
        the same *token*, or holding an expired claim.
        """
        now = _ts(self._clock())
        with self._session("claim") as conn:
            cur = conn.execute(
                "UPDATE media SET claim_token = ?, claim_expires_at = ? "
                "WHERE id = ? AND signed_locator IS NULL "
                "AND (claim_token IS NULL OR claim_token = ? OR claim_expires_at <= ?)",
                (token, _ts(expires_at), record_id, token, now),
            )
            claimed = cur.rowcount == 1
        logger.debug("Claim on record %d by %s: %s", record_id, token, claimed)
        return claimed

    def release_claim(self, record_id: int, token: str) -> None:
        """Drop a claim held by *token*; a no-op if the claim moved on."""
        with self._session("release_claim") as conn:
            conn.execute(
                "UPDATE media SET claim_token = NULL, claim_expires_at = NULL "
                "WHERE id = ? AND claim_token = ?",
                (record_id, token),
            )

    # ------------------------------------------------------------------
    # Terminal write
    # ------------------------------------------------------------------

    def commit_signed(
        self,
        record_id: int,
        signed_locator: str,
        signature: bytes,
        signed_at: datetime,
        proof: bytes | None,
    ) -> None:
        """Atomically write all terminal fields for one record.

        Raises
        ------
        NotFoundError
            If the record does not exist.
        AlreadySignedError
            If the record already carries terminal fields.
        StorageFault
            On any database failure.
        """
        if not signed_locator or not signature:
            raise StorageFault(
                f"Refusing partial terminal write for record {record_id}",
                record_id=record_id,
                stage="commit",
            )
        with self._session("commit_signed") as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT signed_locator FROM media WHERE id = ?", (record_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError(
                        f"Record {record_id} not found",
                        record_id=record_id,
                        stage="commit",
                    )
                if row[0] is not None:
                    raise AlreadySignedError(
                        f"Record {record_id} is already signed",
                        record_id=record_id,
                        stage="commit",
                    )
                conn.execute(
                    "UPDATE media SET signed_locator = ?, signature = ?, signed_at = ?, "
                    "proof = ?, claim_token = NULL, claim_expires_at = NULL "
                    "WHERE id = ? AND signed_locator IS NULL",
                    (
                        signed_locator,
                        sqlite3.Binary(signature),
                        _ts(signed_at),
                        sqlite3.Binary(proof) if proof else None,
                        record_id,
                    ),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        logger.info("Committed signature for record %d -> %s", record_id, signed_locator)

    # ------------------------------------------------------------------
    # Proof upgrades
    # ------------------------------------------------------------------

    def list_unconfirmed(self) -> list[MediaRecord]:
        """Signed records whose timestamp proof is absent or still pending."""
        with self._session("list_unconfirmed") as conn:
            rows = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM media "
                "WHERE signed_locator IS NOT NULL ORDER BY id ASC"
            ).fetchall()
        records = [self._row_to_record(row) for row in rows]
        return [r for r in records if r.proof_status != ProofStatus.COMPLETE]

    def update_proof(self, record_id: int, proof: bytes) -> None:
        """Replace the proof of an already signed record."""
        with self._session("update_proof") as conn:
            cur = conn.execute(
                "UPDATE media SET proof = ? WHERE id = ? AND signed_locator IS NOT NULL",
                (sqlite3.Binary(proof), record_id),
            )
            if cur.rowcount == 1:
                return
            exists = conn.execute(
                "SELECT 1 FROM media WHERE id = ?", (record_id,)
            ).fetchone()
        if exists is None:
            raise NotFoundError(f"Record {record_id} not found", record_id=record_id)
        raise StorageFault(
            f"Record {record_id} is not signed; proof cannot be attached",
            record_id=record_id,
            stage="reconcile",
        )

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get(self, record_id: int) -> MediaRecord:
        """Return one record, or raise ``NotFoundError``."""
        with self._session("get") as conn:
            row = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM media WHERE id = ?", (record_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Record {record_id} not found", record_id=record_id)
        return self._row_to_record(row)

    def list_records(self) -> list[MediaRecord]:
        """Return every record, ordered by id."""
        with self._session("list_records") as conn:
            rows = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM media ORDER BY id ASC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: tuple) -> MediaRecord:
        """Convert a SQLite row tuple to a MediaRecord."""
        (
            record_id,
            url,
            title,
            download_date,
            unsigned_locator,
            signed_locator,
            signature,
            signed_at,
            proof,
        ) = row
        proof_bytes = bytes(proof) if proof is not None else None
        return MediaRecord(
            record_id=record_id,
            url=url,
            title=title,
            download_date=download_date,
            unsigned_locator=unsigned_locator,
            signed_locator=signed_locator,
            signature=bytes(signature) if signature is not None else None,
            signed_at=signed_at,
            proof=proof_bytes,
            proof_status=proof_status(proof_bytes),
        )
