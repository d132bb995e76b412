"""Acquisition bridge — download media with ``yt-dlp`` and queue it for signing.

``yt-dlp`` is invoked as an external process with ``--print-json``; its
metadata names the downloaded file. The file is uploaded to the unsigned
bucket under ``<unsigned_prefix><id>.<ext>`` and a pending ledger record is
registered. Signing happens later, in the pipeline.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from mediaseal.config import SealConfig
from mediaseal.core.faults import FatalFault, ProvenanceFault, TransientFault
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.core.object_store import ObjectStore
from mediaseal.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

Runner = Callable[[list[str]], subprocess.CompletedProcess]


class AcquisitionError(ProvenanceFault):
    """``yt-dlp`` failed or produced unusable output."""


class AcquiredMedia(BaseModel):
    """A downloaded artifact that is now registered as pending."""

    model_config = ConfigDict(frozen=True)

    record_id: int
    video_id: str
    title: str | None = None
    local_path: Path
    unsigned_locator: str


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, check=False)


def build_ytdlp_command(url: str, config: SealConfig) -> list[str]:
    output = str(Path(config.downloads_dir) / "%(id)s.%(ext)s")
    return [
        config.ytdlp_binary,
        "--format",
        config.ytdlp_format,
        "--output",
        output,
        "--print-json",
        url,
    ]


def parse_ytdlp_output(stdout: str) -> dict:
    """Return the metadata object from ``--print-json`` output.

    ``yt-dlp`` prints one JSON object per downloaded entry; the last one wins.
    """
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise AcquisitionError("yt-dlp produced no metadata")
    try:
        info = json.loads(lines[-1])
    except json.JSONDecodeError as exc:
        raise AcquisitionError(f"Unparseable yt-dlp metadata: {exc}") from exc
    if not isinstance(info, dict) or not info.get("id"):
        raise AcquisitionError("yt-dlp metadata has no 'id'")
    return info


class MediaAcquirer:
    """Download a URL, upload it to the unsigned bucket and register it."""

    def __init__(
        self,
        ledger: MediaLedger,
        store: ObjectStore,
        config: SealConfig | None = None,
        *,
        runner: Runner | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.config = config or SealConfig()
        self.ledger = ledger
        self.store = store
        self._runner = runner or _run
        self._retry = retry or RetryPolicy(
            max_attempts=self.config.retry_max_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )

    def acquire(self, url: str) -> AcquiredMedia:
        """Run the full acquisition for *url*.

        Raises
        ------
        AcquisitionError
            If ``yt-dlp`` exits non-zero or its output cannot be used.
        TransientFault, FatalFault
            If the upload to the unsigned bucket fails.
        StorageFault
            If the ledger rejects the registration.
        """
        Path(self.config.downloads_dir).mkdir(parents=True, exist_ok=True)
        cmd = build_ytdlp_command(url, self.config)
        logger.info("Downloading %s", url)
        try:
            result = self._runner(cmd)
        except OSError as exc:
            raise AcquisitionError(f"Cannot run {cmd[0]}: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip().splitlines()
            raise AcquisitionError(
                f"Failed to download {url} (exit {result.returncode})"
                + (f": {detail[-1]}" if detail else "")
            )

        info = parse_ytdlp_output(result.stdout)
        video_id = str(info["id"])
        ext = info.get("ext") or "mp4"
        local_path = Path(self.config.downloads_dir) / f"{video_id}.{ext}"
        if not local_path.is_file():
            raise AcquisitionError(f"Downloaded file not found: {local_path}")

        locator = f"{self.config.unsigned_prefix}{video_id}.{ext}"
        data = local_path.read_bytes()
        try:
            self._retry.call(
                lambda: self.store.put(self.config.unsigned_bucket, locator, data),
                describe=f"upload {locator}",
            )
        except (TransientFault, FatalFault) as exc:
            logger.error("Upload of %s failed: %s", locator, exc)
            raise

        record_id = self.ledger.register(url, info.get("title"), locator)
        logger.info("Registered record %d for %s at %s", record_id, url, locator)
        return AcquiredMedia(
            record_id=record_id,
            video_id=video_id,
            title=info.get("title"),
            local_path=local_path,
            unsigned_locator=locator,
        )
