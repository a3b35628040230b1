"""Private blob storage for templates and submission files.

Objects live in named buckets and are never served directly: readers get a
short-lived signed download link (see `views.blobs.blob_download`).
"""

from __future__ import annotations

import logging
import time
import urllib.parse
from pathlib import Path
from typing import IO, Iterable, Protocol

from django.conf import settings
from django.core import signing
from django.core.files.base import ContentFile, File
from django.core.files.storage import FileSystemStorage
from django.utils.module_loading import import_string

from ..errors import Internal

logger = logging.getLogger(__name__)

_SALT = "collect.blob-download.v1"
BLOB_URL_PREFIX = "/api/collect-blob/"


class StorageGateway(Protocol):
    def upload_private(self, bucket: str, key: str, data, content_type: str) -> None: ...

    def remove(self, bucket: str, keys: Iterable[str]) -> None: ...

    def create_signed_download_url(self, bucket: str, key: str, expires_in: int, download_name: str) -> str: ...

    def list(self, bucket: str, prefix: str) -> list[str]: ...


def _signing_key() -> str:
    return getattr(settings, "COLLECT_SIGNED_URL_SIGNING_KEY", None) or settings.SECRET_KEY


def issue_blob_token(*, bucket: str, key: str, download_name: str, expires_in: int) -> str:
    return signing.dumps(
        {"b": bucket, "k": key, "n": download_name, "exp": int(time.time()) + max(int(expires_in), 1)},
        key=_signing_key(),
        salt=_SALT,
    )


def verify_blob_token(token: str) -> dict | None:
    """Decode a blob token; returns None when tampered with or expired."""
    try:
        payload = signing.loads(token, key=_signing_key(), salt=_SALT)
    except signing.BadSignature:
        return None
    if not isinstance(payload, dict):
        return None
    if int(payload.get("exp") or 0) < int(time.time()):
        return None
    if not payload.get("b") or not payload.get("k"):
        return None
    return payload


class DjangoStorageGateway:
    """Bucket-per-directory gateway on top of Django's FileSystemStorage."""

    def __init__(self, root: str | None = None):
        self.root = Path(root or settings.COLLECT_STORAGE_ROOT)

    def _storage(self, bucket: str) -> FileSystemStorage:
        if not bucket or "/" in bucket or bucket.startswith("."):
            raise Internal("Invalid bucket name")
        return FileSystemStorage(location=str(self.root / bucket))

    def upload_private(self, bucket: str, key: str, data, content_type: str) -> None:
        storage = self._storage(bucket)
        if storage.exists(key):
            raise FileExistsError(f"object already exists: {key}")
        if isinstance(data, (bytes, bytearray)):
            payload = ContentFile(bytes(data))
        elif isinstance(data, File):
            payload = data
        else:
            payload = File(data)
        saved = storage.save(key, payload)
        if saved != key:
            # FileSystemStorage renamed the object; keys must be stable.
            storage.delete(saved)
            raise FileExistsError(f"object already exists: {key}")

    def remove(self, bucket: str, keys: Iterable[str]) -> None:
        storage = self._storage(bucket)
        for key in keys:
            if key:
                storage.delete(key)

    def exists(self, bucket: str, key: str) -> bool:
        return self._storage(bucket).exists(key)

    def open(self, bucket: str, key: str) -> IO[bytes]:
        return self._storage(bucket).open(key, "rb")

    def create_signed_download_url(self, bucket: str, key: str, expires_in: int, download_name: str) -> str:
        if not self.exists(bucket, key):
            raise Internal("Failed to create download link", details={"key": key})
        token = issue_blob_token(bucket=bucket, key=key, download_name=download_name, expires_in=expires_in)
        base = getattr(settings, "COLLECT_PUBLIC_BASE_URL", "") or ""
        return f"{base}{BLOB_URL_PREFIX}{urllib.parse.quote(token)}"

    def list(self, bucket: str, prefix: str) -> list[str]:
        storage = self._storage(bucket)
        names: list[str] = []
        pending = [""]
        while pending:
            current = pending.pop()
            try:
                dirs, files = storage.listdir(current)
            except FileNotFoundError:
                continue
            for directory in dirs:
                pending.append(f"{current}{directory}/")
            for name in files:
                names.append(f"{current}{name}")
        clean_prefix = (prefix or "").lstrip("/")
        return sorted(name for name in names if name.startswith(clean_prefix))

    def open_signed_url(self, url: str) -> IO[bytes] | None:
        """Open a host-relative link issued by this gateway, or None if invalid."""
        path = urllib.parse.urlsplit(url).path
        if not path.startswith(BLOB_URL_PREFIX):
            return None
        payload = verify_blob_token(urllib.parse.unquote(path[len(BLOB_URL_PREFIX):]))
        if payload is None:
            return None
        return self.open(payload["b"], payload["k"])


def get_storage_gateway() -> StorageGateway:
    factory = import_string(getattr(settings, "COLLECT_STORAGE_GATEWAY", "collect.services.storage.DjangoStorageGateway"))
    return factory()


def signed_url_or_none(storage: StorageGateway, bucket: str, key: str | None, download_name: str) -> str | None:
    """Issue a download link for read views; failures degrade to None."""
    if not key:
        return None
    try:
        return storage.create_signed_download_url(
            bucket,
            key,
            int(getattr(settings, "COLLECT_SIGNED_URL_EXPIRES_IN", 60)),
            download_name,
        )
    except Exception:
        logger.warning("signed_url_failed bucket=%s key=%s", bucket, key, exc_info=True)
        return None
