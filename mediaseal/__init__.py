"""mediaseal: signing and timestamping provenance for archived media.

v0.2.0 — ledger-driven, crash-safe provenance pipeline:
  - SQLite media ledger with claim/lease and a single atomic terminal write
  - Pluggable signers: Ed25519 (PyNaCl), RSA PKCS#1 v1.5 (cryptography),
    ML-DSA (pqcrypto)
  - OpenTimestamps calendar anchoring with pending/complete proof tracking
  - S3-compatible object storage (boto3) with capped exponential backoff
  - Proof reconciliation pass for upgrading pending attestations
"""

__version__ = "0.2.0"
__description__ = "Signing and timestamping pipeline for archived media provenance"

from mediaseal.core.pipeline import ProvenancePipeline
from mediaseal.core.media_ledger import MediaLedger
from mediaseal.cli.app import app as cli

__all__ = ["ProvenancePipeline", "MediaLedger", "cli", "__version__"]
