"""Runtime configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
MEDIASEAL_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CALENDARS: list[str] = [
    "https://a.pool.opentimestamps.org",
    "https://b.pool.opentimestamps.org",
    "https://a.pool.eternitywall.com",
]


class SealConfig(BaseSettings):
    """Pipeline configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export MEDIASEAL_ENVIRONMENT=production
        export MEDIASEAL_S3_ENDPOINT_URL=https://<account>.r2.cloudflarestorage.com
        export MEDIASEAL_SIGNING_ALGORITHM=ml-dsa-65

    Or via .env file::

        MEDIASEAL_LEDGER_PATH=/data/historical_media.db
        MEDIASEAL_MAX_WORKERS=2
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MEDIASEAL_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Ledger and local scratch
    ledger_path: Path = Path("historical_media.db")
    scratch_dir: Path = Path(".mediaseal/scratch")
    downloads_dir: Path = Path("downloads")

    # Object storage
    storage_backend: str = "s3"  # s3 | local
    local_store_path: Path = Path(".mediaseal/buckets")
    s3_endpoint_url: str = ""
    s3_region: str = "auto"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    unsigned_bucket: str = "historical-media-unsigned"
    signed_bucket: str = "historical-media-signed"
    unsigned_prefix: str = "videos/"
    signed_prefix: str = "signed/"
    proof_prefix: str = "timestamps/"
    proof_extension: str = ".ots"
    storage_timeout_seconds: float = 30.0

    # Signing key material
    signing_algorithm: str = "ml-dsa-65"
    private_key_path: Path = Path("ml_dsa_private_key.bin")
    public_key_path: Path = Path("ml_dsa_public_key.bin")

    # Timestamp anchoring
    anchor_enabled: bool = True
    calendar_urls: list[str] = Field(default_factory=lambda: list(DEFAULT_CALENDARS))
    anchor_timeout_seconds: float = 30.0
    min_calendar_responses: int = 1

    # Retry and concurrency
    retry_max_attempts: int = 4
    retry_base_delay: float = 0.5
    retry_max_delay: float = 8.0
    max_workers: int = 1
    claim_lease_seconds: int = 900

    # Acquisition (yt-dlp)
    ytdlp_binary: str = "yt-dlp"
    ytdlp_format: str = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton — import as `from mediaseal.config import config`
config = SealConfig()
