"""Local filesystem storage with path validation and atomic writes."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import os
import shutil
import tempfile
from collections.abc import AsyncIterator, Iterator
from datetime import timedelta
from pathlib import Path
from typing import Any, cast

import aiofiles
import aiofiles.os

from cloudvault.application.dtos.storage import ObjectListItem, ObjectStat, PutResult
from cloudvault.core.constants import LOCAL_META_SUFFIX, LOCAL_TMP_PREFIX
from cloudvault.domain.enums import StorageBackendKind
from cloudvault.infrastructure.exceptions import (
    BackendUnavailableError,
    StorageNotFoundError,
    StoragePermissionError,
)
from cloudvault.shared.utils.datetime import from_timestamp_utc, utc_now
from cloudvault.shared.utils.generators import generate_signing_secret
from cloudvault.shared.utils.streams import UploadSource, iter_source

DOWNLOAD_ROUTE = "/api/v1/storage/download"


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class LocalStorageBackend:
    """Local filesystem storage with atomic writes and path traversal protection.

    Paths are validated against storage_root. Writes stream into a temp file
    in the target directory and are renamed into place, so a reader never
    sees a partial object. Content type and custom metadata live in a
    .meta.json sidecar. Download handles are HMAC-signed tokens resolved by
    the storage download route; without a shared download_secret each
    instance signs with its own random key.
    """

    kind = StorageBackendKind.LOCAL.value

    def __init__(
        self,
        storage_root: str,
        base_url: str | None = None,
        chunk_size: int = 64 * 1024,
        download_secret: str | bytes | None = None,
    ) -> None:
        """Initialize local storage.

        Args:
            storage_root: Base directory for all objects.
            base_url: Base URL for download links (e.g. https://api.example.com).
            chunk_size: Read/write chunk size in bytes.
            download_secret: HMAC key for download tokens; random per instance if None.
        """
        self.storage_root = Path(storage_root).resolve()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.chunk_size = chunk_size
        if isinstance(download_secret, str):
            download_secret = download_secret.encode()
        self._download_secret = download_secret or generate_signing_secret()
        self.storage_root.mkdir(parents=True, exist_ok=True, mode=0o750)

    def _get_full_path(self, key: str) -> Path:
        """Resolve and validate path under storage_root. Raises StoragePermissionError if traversal."""
        full_path = (self.storage_root / key).resolve()
        try:
            full_path.relative_to(self.storage_root)
        except ValueError as e:
            raise StoragePermissionError(key, "path_validation") from e
        if full_path == self.storage_root:
            raise StoragePermissionError(key, "path_validation")
        return full_path

    @staticmethod
    def _meta_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + LOCAL_META_SUFFIX)

    async def _write_metadata(self, file_path: Path, metadata: dict[str, Any]) -> None:
        """Write JSON sidecar."""
        meta_path = self._meta_path(file_path)
        async with aiofiles.open(meta_path, "w") as f:
            await f.write(json.dumps(metadata, indent=2))
        os.chmod(meta_path, 0o640)

    async def _read_metadata(self, file_path: Path) -> dict[str, Any]:
        """Read JSON sidecar or empty dict."""
        meta_path = self._meta_path(file_path)
        if not meta_path.exists():
            return {}
        async with aiofiles.open(meta_path, "r") as f:
            content = await f.read()
        result = json.loads(content)
        return cast(dict[str, Any], result) if isinstance(result, dict) else {}

    async def put(
        self,
        source: UploadSource,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        """Stream source into key with an atomic rename. Overwrites an existing object."""
        target_path = self._get_full_path(key)
        sha256 = hashlib.sha256()
        size = 0
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=target_path.parent,
                prefix=LOCAL_TMP_PREFIX,
                suffix=target_path.suffix,
            )
            os.close(temp_fd)
        except OSError as e:
            raise BackendUnavailableError("put", self.kind, str(e)) from e
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                async for chunk in iter_source(source, self.chunk_size):
                    await f.write(chunk)
                    sha256.update(chunk)
                    size += len(chunk)
            os.chmod(temp_path, 0o640)
            os.replace(temp_path, target_path)
            await self._write_metadata(
                target_path,
                {
                    "key": key,
                    "size": size,
                    "content_type": content_type,
                    "etag": sha256.hexdigest(),
                    "uploaded_at": utc_now().isoformat(),
                    "custom": metadata or {},
                },
            )
        except OSError as e:
            raise BackendUnavailableError("put", self.kind, str(e)) from e
        finally:
            # Aborted or failed writes (including cancellation) leave no temp file behind.
            if os.path.exists(temp_path):
                os.unlink(temp_path)
        return PutResult(
            key=key,
            location_hint=str(target_path),
            size_bytes=size,
            etag=sha256.hexdigest(),
        )

    async def get_stream(self, key: str) -> AsyncIterator[bytes]:
        """Stream object content. Raises StorageNotFoundError if key is absent."""
        file_path = self._get_full_path(key)
        if not file_path.is_file():
            raise StorageNotFoundError(key)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        except OSError as e:
            raise BackendUnavailableError("get_stream", self.kind, str(e)) from e

    async def delete(self, key: str) -> None:
        """Delete object and sidecar. Absent keys are a no-op."""
        file_path = self._get_full_path(key)
        try:
            for path in (file_path, self._meta_path(file_path)):
                try:
                    await aiofiles.os.remove(path)
                except FileNotFoundError:
                    pass
            self._prune_empty_parents(file_path.parent)
        except OSError as e:
            raise BackendUnavailableError("delete", self.kind, str(e)) from e

    def _prune_empty_parents(self, parent: Path) -> None:
        """Remove empty directories up to (not including) storage_root."""
        while parent != self.storage_root and self.storage_root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    async def stat(self, key: str) -> ObjectStat:
        """Return size, content type, etag and mtime; exists=False when absent."""
        file_path = self._get_full_path(key)
        try:
            st = await aiofiles.os.stat(file_path)
        except FileNotFoundError:
            return ObjectStat(exists=False)
        except OSError as e:
            raise BackendUnavailableError("stat", self.kind, str(e)) from e
        stored = await self._read_metadata(file_path)
        return ObjectStat(
            exists=True,
            size_bytes=st.st_size,
            last_modified=from_timestamp_utc(st.st_mtime),
            content_type=stored.get("content_type"),
            etag=stored.get("etag"),
            metadata=stored.get("custom", {}),
        )

    async def copy(self, source_key: str, dest_key: str) -> None:
        """Copy object and sidecar to dest_key."""
        source_path = self._get_full_path(source_key)
        dest_path = self._get_full_path(dest_key)
        if not source_path.is_file():
            raise StorageNotFoundError(source_key)

        def _copy() -> None:
            dest_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
            shutil.copyfile(source_path, dest_path)
            source_meta = self._meta_path(source_path)
            if source_meta.exists():
                meta = json.loads(source_meta.read_text())
                meta["key"] = dest_key
                self._meta_path(dest_path).write_text(json.dumps(meta, indent=2))

        try:
            await asyncio.to_thread(_copy)
        except FileNotFoundError as e:
            raise StorageNotFoundError(source_key) from e
        except OSError as e:
            raise BackendUnavailableError("copy", self.kind, str(e)) from e

    def _iter_keys(self, directory: Path, rel: str, prefix: str) -> Iterator[tuple[str, Path]]:
        """Yield (key, path) under directory in key order, skipping branches outside prefix.

        Directories sort as name + "/" so the walk matches plain string order
        of full keys.
        """
        with os.scandir(directory) as it:
            entries = sorted(
                (e.name + "/" if e.is_dir(follow_symlinks=False) else e.name, e) for e in it
            )
        for name, entry in entries:
            key = rel + name
            if key > prefix and not key.startswith(prefix):
                return
            if name.endswith("/"):
                if key.startswith(prefix) or prefix.startswith(key):
                    yield from self._iter_keys(Path(entry.path), key, prefix)
            elif key.startswith(prefix) and not (
                name.endswith(LOCAL_META_SUFFIX) or name.startswith(LOCAL_TMP_PREFIX)
            ):
                yield key, Path(entry.path)

    async def list(self, prefix: str, limit: int = 1000) -> list[ObjectListItem]:
        """Return up to limit objects under prefix, ordered by key.

        The walk stops once limit objects are found; only those are stat'ed.
        """
        if limit <= 0:
            return []
        base = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        start = self._get_full_path(base) if base else self.storage_root

        def _collect() -> list[ObjectListItem]:
            items: list[ObjectListItem] = []
            if not start.is_dir():
                return items
            rel = (
                ""
                if start == self.storage_root
                else start.relative_to(self.storage_root).as_posix() + "/"
            )
            for key, path in self._iter_keys(start, rel, prefix):
                try:
                    st = path.stat()
                except FileNotFoundError:
                    continue
                items.append(
                    ObjectListItem(
                        key=key,
                        size_bytes=st.st_size,
                        last_modified=from_timestamp_utc(st.st_mtime),
                    )
                )
                if len(items) >= limit:
                    break
            return items

        try:
            return await asyncio.to_thread(_collect)
        except OSError as e:
            raise BackendUnavailableError("list", self.kind, str(e)) from e

    def _sign(self, key_part: str, expires_ms: int) -> str:
        mac = hmac.new(self._download_secret, f"{key_part}.{expires_ms}".encode(), hashlib.sha256)
        return _b64encode(mac.digest())

    async def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a token URL valid for ttl_seconds, resolved by the storage download route.

        The token carries the key and expiry signed with HMAC-SHA256, so any
        process sharing download_secret can resolve it.
        """
        expires_ms = int((utc_now() + timedelta(seconds=ttl_seconds)).timestamp() * 1000)
        key_part = _b64encode(key.encode())
        token = f"{key_part}.{expires_ms}.{self._sign(key_part, expires_ms)}"
        path = f"{DOWNLOAD_ROUTE}/{token}"
        return f"{self.base_url}{path}" if self.base_url else path

    def validate_download_token(self, token: str) -> str | None:
        """Return key if token is authentic and not expired."""
        try:
            key_part, expires, signature = token.split(".")
            expires_ms = int(expires)
        except ValueError:
            return None
        expected = self._sign(key_part, expires_ms)
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            return None
        if utc_now().timestamp() * 1000 >= expires_ms:
            return None
        try:
            return _b64decode(key_part).decode()
        except ValueError:
            return None
