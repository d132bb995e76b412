"""Key handles and on-disk key files.

Key generation happens once, out of band (``mediaseal keygen``). The
pipeline only loads a ready ``KeyHandle`` at the start of a run and never
writes private key material itself.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from mediaseal.bridge.crypto_bridge import normalize_algorithm, signer_for
from mediaseal.core.faults import FatalFault
from mediaseal.core.hasher import key_fingerprint

logger = logging.getLogger(__name__)


class KeyHandle(BaseModel):
    """Borrowed reference to a key pair of one algorithm family."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    public_key: bytes
    private_key: bytes = Field(repr=False, exclude=True)

    @property
    def fingerprint(self) -> str:
        """First 16 hex chars of SHA-256(public key)."""
        return key_fingerprint(self.public_key)


def load_key_handle(algorithm: str, private_path: Path, public_path: Path) -> KeyHandle:
    """Read both key files into a ``KeyHandle``.

    Raises ``FatalFault`` if either file is missing or unreadable.
    """
    private_path, public_path = Path(private_path), Path(public_path)
    try:
        private_key = private_path.read_bytes()
        public_key = public_path.read_bytes()
    except OSError as exc:
        raise FatalFault(f"Cannot read signing key files: {exc}") from exc
    if not private_key or not public_key:
        raise FatalFault("Signing key files are empty")
    handle = KeyHandle(
        algorithm=normalize_algorithm(algorithm),
        public_key=public_key,
        private_key=private_key,
    )
    logger.info(
        "Loaded %s key pair (fingerprint=%s)", handle.algorithm, handle.fingerprint
    )
    return handle


def ensure_key_files(
    algorithm: str, private_path: Path, public_path: Path
) -> tuple[KeyHandle, bool]:
    """Generate a key pair unless the private key file already exists.

    Returns ``(handle, created)``. Existing keys are never regenerated.
    """
    private_path, public_path = Path(private_path), Path(public_path)
    if private_path.exists():
        return load_key_handle(algorithm, private_path, public_path), False

    signer = signer_for(algorithm)
    private_key, public_key = signer.generate_keypair()

    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(private_key)
    public_path.write_bytes(public_key)

    handle = KeyHandle(
        algorithm=signer.algorithm, public_key=public_key, private_key=private_key
    )
    logger.info(
        "Generated %s key pair at %s (fingerprint=%s)",
        handle.algorithm,
        private_path,
        handle.fingerprint,
    )
    return handle, True
