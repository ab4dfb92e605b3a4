"""Local filesystem implementation of ObjectStoragePort.

Used as the fallback when remote object storage is unconfigured or failing.
Objects live under a root directory using their storage key as relative path;
content type and metadata are kept in a JSON sidecar under ``.meta/``.
Signed URLs are stable internal paths served by the application's own
authenticated download endpoint.
"""

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from domain.documents.ports.object_storage_port import (
    AccessCheckResult,
    ObjectInfo,
    ObjectStoragePort,
    RetrievedObject,
    StoredObject,
)
from domain.errors import StorageError

logger = logging.getLogger(__name__)

LOCAL_DOWNLOAD_PATH = "/api/documents/download/local"
_META_DIR = ".meta"


def local_download_url(storage_key: str) -> str:
    return f"{LOCAL_DOWNLOAD_PATH}/{storage_key}"


class LocalStorageAdapter(ObjectStoragePort):
    """Directory-rooted storage adapter.

    Example:
        storage = LocalStorageAdapter("./uploads")
        stored = await storage.put_object("documents/a.pdf", data, "application/pdf")
    """

    storage_type = "local"

    def __init__(self, root_path):
        self.root = Path(root_path).resolve()
        self.meta_root = self.root / _META_DIR

    def _path_for(self, storage_key: str) -> Path:
        """Resolve a key to a path, refusing anything that escapes the root."""
        if not storage_key or storage_key.startswith("/") or "\x00" in storage_key:
            raise FileNotFoundError(f"Invalid storage key: {storage_key!r}")
        path = (self.root / storage_key).resolve()
        if path == self.root or self.root not in path.parents:
            raise FileNotFoundError(f"Invalid storage key: {storage_key!r}")
        if self.meta_root == path or self.meta_root in path.parents:
            raise FileNotFoundError(f"Invalid storage key: {storage_key!r}")
        return path

    def _meta_path_for(self, storage_key: str) -> Path:
        return self.meta_root / f"{storage_key}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def put_object(
        self,
        storage_key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        try:
            path = self._path_for(storage_key)
        except FileNotFoundError as e:
            raise StorageError(str(e), error_code="InvalidKey")

        etag = f'"{hashlib.md5(data).hexdigest()}"'
        sidecar = {
            "content_type": content_type,
            "metadata": {k: str(v) for k, v in (metadata or {}).items()},
            "etag": etag,
        }

        try:
            self._atomic_write(path, data)
            self._atomic_write(self._meta_path_for(storage_key), json.dumps(sidecar).encode("utf-8"))
        except OSError as e:
            logger.error(f"Local storage write failed: storage_key={storage_key}, error={e}")
            raise StorageError(f"Failed to write local file: {e}")

        logger.info(f"Saved file to local storage: storage_key={storage_key}, size={len(data)}")
        return StoredObject(
            storage_key=storage_key,
            size_bytes=len(data),
            content_type=content_type,
            etag=etag,
        )

    async def get_object(self, storage_key: str) -> RetrievedObject:
        path = self._path_for(storage_key)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {storage_key}")

        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read local file: {e}")

        sidecar = self._read_sidecar(storage_key)
        return RetrievedObject(
            storage_key=storage_key,
            data=data,
            content_type=sidecar.get("content_type") or "application/octet-stream",
            metadata=sidecar.get("metadata") or {},
        )

    def _read_sidecar(self, storage_key: str) -> dict:
        meta_path = self._meta_path_for(storage_key)
        if not meta_path.is_file():
            return {}
        try:
            return json.loads(meta_path.read_text("utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable metadata sidecar: storage_key={storage_key}, error={e}")
            return {}

    async def delete_object(self, storage_key: str) -> bool:
        try:
            path = self._path_for(storage_key)
        except FileNotFoundError:
            return False
        if not path.is_file():
            logger.info(f"File not found for deletion: storage_key={storage_key}")
            return False

        try:
            path.unlink()
            meta_path = self._meta_path_for(storage_key)
            if meta_path.exists():
                meta_path.unlink()
        except FileNotFoundError:
            # Lost a race with a concurrent delete
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete local file: {e}")

        logger.info(f"Deleted local file: storage_key={storage_key}")
        return True

    async def object_exists(self, storage_key: str) -> bool:
        try:
            return self._path_for(storage_key).is_file()
        except FileNotFoundError:
            return False

    async def list_objects(self, prefix: str) -> List[ObjectInfo]:
        if not self.root.is_dir():
            return []

        files: List[ObjectInfo] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.root)
            if relative.parts[0] == _META_DIR or path.name.startswith(".tmp-"):
                continue
            key = relative.as_posix()
            if not key.startswith(prefix or ""):
                continue
            stat = path.stat()
            files.append(ObjectInfo(
                key=key,
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                etag=self._read_sidecar(key).get("etag"),
            ))
        return files

    async def generate_signed_url(
        self,
        storage_key: str,
        expires_in_seconds: int = 3600,
    ) -> str:
        """Return the internal download path; local files carry no signature."""
        if not await self.object_exists(storage_key):
            raise FileNotFoundError(f"File not found: {storage_key}")
        return local_download_url(storage_key)

    async def check_access(self) -> AccessCheckResult:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return AccessCheckResult(has_access=False, error=f"Local storage unavailable: {e}")
        if not os.access(self.root, os.W_OK):
            return AccessCheckResult(
                has_access=False,
                error=f"Local storage directory is not writable: {self.root}",
            )
        return AccessCheckResult(has_access=True)
