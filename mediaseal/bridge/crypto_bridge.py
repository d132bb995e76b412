"""Crypto bridge — polymorphic signers over three algorithm families.

Bridge boundary
---------------
The pipeline depends only on the ``Signer`` protocol. Three backends:

1. **Ed25519** (PyNaCl / libsodium): signs the SHA-256 content digest.
   64-byte signatures.
2. **RSA PKCS#1 v1.5 + SHA-256** (``cryptography``): deterministic padding
   over the prehashed content digest. 256-byte signatures for 2048-bit keys.
3. **ML-DSA** (``pqcrypto``, FIPS 204 parameter sets 44/65/87): lattice-based,
   signs the raw artifact content; there is no separate digest step.

``Signer.signs_digest`` tells the pipeline which input to pass. Both inputs
are derived from the same fetched bytes.

Any backend failure during ``sign()`` surfaces as ``SignerFault``; signing is
never silently downgraded. ``verify()`` is fail-closed and returns ``False``
on malformed input.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import nacl.signing
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils
from nacl.exceptions import BadSignatureError

from mediaseal.core.faults import FatalFault, SignerFault

if TYPE_CHECKING:
    from mediaseal.bridge.keys import KeyHandle

logger = logging.getLogger(__name__)

ED25519 = "ed25519"
RSA_PKCS1V15_SHA256 = "rsa-pkcs1v15-sha256"
ML_DSA_PARAMETER_SETS = ("ml-dsa-44", "ml-dsa-65", "ml-dsa-87")

_ALIASES = {
    "rsa": RSA_PKCS1V15_SHA256,
    "ml-dsa": "ml-dsa-65",
    "dilithium": "ml-dsa-65",
}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Signer(Protocol):
    """Signing capability; the pipeline is agnostic to the algorithm family."""

    algorithm: str
    signs_digest: bool

    def sign(self, message: bytes, key: KeyHandle) -> bytes:
        """Sign *message* (digest or raw content, per ``signs_digest``)."""
        ...

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        """Return ``True`` if *signature* is valid for *message*."""
        ...

    def generate_keypair(self) -> tuple[bytes, bytes]:
        """Return ``(private_key, public_key)`` in this family's file format."""
        ...


def _check_key(signer: Signer, key: KeyHandle) -> None:
    if key.algorithm != signer.algorithm:
        raise SignerFault(
            f"Key handle is for {key.algorithm!r}, signer expects {signer.algorithm!r}"
        )


# ---------------------------------------------------------------------------
# Ed25519 (PyNaCl)
# ---------------------------------------------------------------------------


class Ed25519Signer:
    """Ed25519 over the content digest. Keys are raw 32-byte seed / public."""

    algorithm = ED25519
    signs_digest = True

    def sign(self, message: bytes, key: KeyHandle) -> bytes:
        _check_key(self, key)
        try:
            sk = nacl.signing.SigningKey(key.private_key)
            return bytes(sk.sign(message).signature)
        except Exception as exc:
            raise SignerFault(f"Ed25519 signing failed: {exc}") from exc

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        if not signature:
            return False
        try:
            nacl.signing.VerifyKey(public_key).verify(message, signature)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    def generate_keypair(self) -> tuple[bytes, bytes]:
        sk = nacl.signing.SigningKey.generate()
        return bytes(sk.encode()), bytes(sk.verify_key.encode())


# ---------------------------------------------------------------------------
# RSA (cryptography)
# ---------------------------------------------------------------------------


class RsaSigner:
    """RSASSA-PKCS1-v1_5 with SHA-256 over the prehashed content digest.

    Keys are PEM: PKCS#8 private, SubjectPublicKeyInfo public.
    """

    algorithm = RSA_PKCS1V15_SHA256
    signs_digest = True

    def __init__(self, key_size: int = 2048) -> None:
        self._key_size = key_size

    def sign(self, message: bytes, key: KeyHandle) -> bytes:
        _check_key(self, key)
        try:
            private = serialization.load_pem_private_key(key.private_key, password=None)
            if not isinstance(private, rsa.RSAPrivateKey):
                raise TypeError("PEM does not contain an RSA private key")
            return private.sign(
                message, padding.PKCS1v15(), utils.Prehashed(hashes.SHA256())
            )
        except Exception as exc:
            raise SignerFault(f"RSA signing failed: {exc}") from exc

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        if not signature:
            return False
        try:
            public = serialization.load_pem_public_key(public_key)
            if not isinstance(public, rsa.RSAPublicKey):
                return False
            public.verify(
                signature, message, padding.PKCS1v15(), utils.Prehashed(hashes.SHA256())
            )
            return True
        except (InvalidSignature, ValueError, TypeError):
            return False

    def generate_keypair(self) -> tuple[bytes, bytes]:
        private = rsa.generate_private_key(public_exponent=65537, key_size=self._key_size)
        private_pem = private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = private.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return private_pem, public_pem


# ---------------------------------------------------------------------------
# ML-DSA (pqcrypto)
# ---------------------------------------------------------------------------


class MlDsaSigner:
    """ML-DSA over the raw artifact content. Keys are fixed-size raw binary.

    Parameters
    ----------
    parameter_set:
        One of ``ml-dsa-44``, ``ml-dsa-65``, ``ml-dsa-87``.
    module:
        Backend exposing ``keygen``/``sign``/``verify`` in the pqcrypto 1.x
        shape. Defaults to ``pqcrypto.sign.<parameter set>``.
    """

    signs_digest = False

    def __init__(self, parameter_set: str = "ml-dsa-65", *, module: Any = None) -> None:
        if parameter_set not in ML_DSA_PARAMETER_SETS:
            raise FatalFault(f"Unknown ML-DSA parameter set: {parameter_set!r}")
        self.algorithm = parameter_set
        if module is None:
            name = "pqcrypto.sign." + parameter_set.replace("-", "_")
            try:
                module = importlib.import_module(name)
            except ImportError as exc:
                raise FatalFault(f"{parameter_set} backend unavailable: {exc}") from exc
        self._module = module

    @property
    def secret_key_size(self) -> int | None:
        return getattr(self._module, "SECRET_KEY_SIZE", None)

    def sign(self, message: bytes, key: KeyHandle) -> bytes:
        _check_key(self, key)
        expected = self.secret_key_size
        if expected is not None and len(key.private_key) != expected:
            raise SignerFault(
                f"{self.algorithm} private key is {len(key.private_key)} bytes, "
                f"expected {expected}"
            )
        try:
            return bytes(self._module.sign(key.private_key, message))
        except Exception as exc:
            raise SignerFault(f"{self.algorithm} signing failed: {exc}") from exc

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        if not signature:
            return False
        try:
            result = self._module.verify(public_key, message, signature)
        except Exception:
            # InvalidSignatureError, or malformed keys and signatures.
            return False
        # Returning without raising means the signature checked out.
        return result is not False

    def generate_keypair(self) -> tuple[bytes, bytes]:
        try:
            public_key, secret_key = self._module.keygen()
        except Exception as exc:
            raise SignerFault(f"{self.algorithm} key generation failed: {exc}") from exc
        return bytes(secret_key), bytes(public_key)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def normalize_algorithm(algorithm: str) -> str:
    """Map user-facing aliases (``rsa``, ``ml-dsa``) to canonical names."""
    name = algorithm.strip().lower()
    return _ALIASES.get(name, name)


def signer_for(algorithm: str) -> Signer:
    """Return the signer for a configured algorithm name.

    Raises ``FatalFault`` for unknown algorithms.
    """
    name = normalize_algorithm(algorithm)
    if name == ED25519:
        return Ed25519Signer()
    if name == RSA_PKCS1V15_SHA256:
        return RsaSigner()
    if name in ML_DSA_PARAMETER_SETS:
        return MlDsaSigner(name)
    raise FatalFault(f"Unsupported signing algorithm: {algorithm!r}")
