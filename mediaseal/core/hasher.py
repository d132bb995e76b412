"""Content digest helpers.

Every signature and anchor commitment is computed over SHA-256 of the full
artifact bytes as fetched from the unsigned store.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

_CHUNK = 1 << 16


def sha256_digest(data: bytes) -> bytes:
    """Return the raw SHA-256 digest of *data*."""
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> bytes:
    """Stream a file through SHA-256 and return the raw digest."""
    hasher = hashlib.sha256()
    with open(path, "rb") as fh:
        while chunk := fh.read(_CHUNK):
            hasher.update(chunk)
    return hasher.digest()


def key_fingerprint(public_key: bytes) -> str:
    """Short fingerprint of a public key: first 16 hex chars of SHA-256."""
    if not public_key:
        return ""
    return sha256_hex(public_key)[:16]
