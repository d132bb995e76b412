"""Object store clients — whole-object get/put against named buckets.

The pipeline talks to two logical buckets (unsigned, signed) through the
``ObjectStore`` protocol. Backends:

1. ``S3ObjectStore``: boto3 against any S3-compatible endpoint (Cloudflare
   R2 uses ``region="auto"``). Botocore's own retries are disabled; the
   pipeline's ``RetryPolicy`` decides what to retry.
2. ``LocalObjectStore``: one directory per bucket, atomic puts.
3. ``InMemoryObjectStore``: dict-backed, for tests and dry runs.

Every backend raises ``NotFoundError`` for absent keys, ``TransientFault``
for retryable failures and ``FatalFault`` for auth/permission errors.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from mediaseal.core.faults import FatalFault, NotFoundError, TransientFault

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404", "NoSuchBucket"}
_TRANSIENT_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "InternalError",
    "ServiceUnavailable",
    "503",
    "500",
}


@runtime_checkable
class ObjectStore(Protocol):
    """Whole-object byte storage addressed by ``(bucket, key)``."""

    def get(self, bucket: str, key: str) -> bytes:
        ...

    def put(self, bucket: str, key: str, data: bytes) -> None:
        ...

    def exists(self, bucket: str, key: str) -> bool:
        ...


# ---------------------------------------------------------------------------
# S3 / R2
# ---------------------------------------------------------------------------


def classify_client_error(exc: ClientError, *, bucket: str, key: str) -> Exception:
    """Map a botocore ``ClientError`` onto the fault taxonomy."""
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)
    message = f"{bucket}/{key}: {code or status} {error.get('Message', '')}".strip()
    if code in _NOT_FOUND_CODES or status == 404:
        return NotFoundError(f"Object not found: {message}")
    if code in _TRANSIENT_CODES or status >= 500 or status == 429:
        return TransientFault(f"Object store unavailable: {message}")
    return FatalFault(f"Object store rejected request: {message}")


class S3ObjectStore:
    """S3-compatible object store.

    Parameters
    ----------
    endpoint_url:
        Endpoint, e.g. ``https://<account>.r2.cloudflarestorage.com``.
        Empty string means AWS S3.
    access_key_id, secret_access_key:
        Credentials. Empty strings defer to boto3's credential chain.
    region:
        Region name; ``auto`` for R2.
    timeout:
        Connect and read timeout in seconds.
    client:
        Pre-built boto3 S3 client (overrides the other settings).
    """

    def __init__(
        self,
        *,
        endpoint_url: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        region: str = "auto",
        timeout: float = 30.0,
        client: Any | None = None,
    ) -> None:
        if client is None:
            kwargs: dict[str, Any] = {
                "region_name": region,
                "config": Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            }
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            if access_key_id and secret_access_key:
                kwargs["aws_access_key_id"] = access_key_id
                kwargs["aws_secret_access_key"] = secret_access_key
            client = boto3.client("s3", **kwargs)
        self._client = client

    def _translate(self, exc: Exception, bucket: str, key: str) -> Exception:
        if isinstance(exc, ClientError):
            return classify_client_error(exc, bucket=bucket, key=key)
        if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
            return FatalFault(f"Object store credentials missing: {exc}")
        if isinstance(
            exc,
            (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, BotoConnectionError),
        ):
            return TransientFault(f"Object store unreachable for {bucket}/{key}: {exc}")
        return FatalFault(f"Object store error for {bucket}/{key}: {exc}")

    def get(self, bucket: str, key: str) -> bytes:
        """Download a whole object, streaming through a spooled temp file."""
        try:
            with tempfile.SpooledTemporaryFile(max_size=8 * 1024 * 1024) as spool:
                self._client.download_fileobj(bucket, key, spool)
                spool.seek(0)
                return spool.read()
        except (ClientError, BotoCoreError) as exc:
            raise self._translate(exc, bucket, key) from exc

    def put(self, bucket: str, key: str, data: bytes) -> None:
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as exc:
            raise self._translate(exc, bucket, key) from exc
        logger.debug("Uploaded %d bytes to %s/%s", len(data), bucket, key)

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as exc:
            translated = self._translate(exc, bucket, key)
            if isinstance(translated, NotFoundError):
                return False
            raise translated from exc


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalObjectStore:
    """Directory-backed store: ``{base}/{bucket}/{key}``.

    Puts write to a temp file in the target directory and rename it into
    place, so readers never observe a partial object.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or ".." in parts or PurePosixPath(key).is_absolute():
            raise FatalFault(f"Invalid object key: {key!r}")
        return self._base / bucket / Path(*parts)

    def get(self, bucket: str, key: str) -> bytes:
        path = self._path(bucket, key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Object not found: {bucket}/{key}") from exc
        except PermissionError as exc:
            raise FatalFault(f"Permission denied reading {bucket}/{key}") from exc
        except OSError as exc:
            raise TransientFault(f"Read failed for {bucket}/{key}: {exc}") from exc

    def put(self, bucket: str, key: str, data: bytes) -> None:
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".put-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except PermissionError as exc:
            raise FatalFault(f"Permission denied writing {bucket}/{key}") from exc
        except OSError as exc:
            raise TransientFault(f"Write failed for {bucket}/{key}: {exc}") from exc

    def exists(self, bucket: str, key: str) -> bool:
        return self._path(bucket, key).is_file()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryObjectStore:
    """Dict-backed store keyed by ``(bucket, key)``."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], bytes] = {}
        self._lock = threading.Lock()
        self.put_count = 0

    def get(self, bucket: str, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[(bucket, key)]
            except KeyError:
                raise NotFoundError(f"Object not found: {bucket}/{key}") from None

    def put(self, bucket: str, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[(bucket, key)] = bytes(data)
            self.put_count += 1

    def exists(self, bucket: str, key: str) -> bool:
        with self._lock:
            return (bucket, key) in self._objects

    def keys(self, bucket: str) -> list[str]:
        with self._lock:
            return sorted(k for b, k in self._objects if b == bucket)


def build_object_store(
    backend: str,
    *,
    local_path: Path | None = None,
    endpoint_url: str = "",
    access_key_id: str = "",
    secret_access_key: str = "",
    region: str = "auto",
    timeout: float = 30.0,
) -> ObjectStore:
    """Construct the configured backend (``s3`` or ``local``)."""
    if backend == "s3":
        return S3ObjectStore(
            endpoint_url=endpoint_url,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=region,
            timeout=timeout,
        )
    if backend == "local":
        return LocalObjectStore(local_path or Path(".mediaseal/buckets"))
    raise FatalFault(f"Unknown storage backend: {backend!r}")
