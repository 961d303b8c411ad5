"""Private object storage for onboarding files.

Objects are addressed by key (`{user_id}/{onboarding_id}/{type}.{ext}`)
and never exposed publicly; readers get a short-lived signed URL
instead. `LocalStorage` keeps objects on disk under `storage_root`.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A storage operation failed."""


class ObjectNotFound(StorageError):
    pass


class Storage(Protocol):
    async def put(self, key: str, content: bytes, content_type: str | None = None) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def open(self, key: str) -> bytes:
        ...


class LocalStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Storage key escapes storage root: {key}")
        return path

    async def put(self, key: str, content: bytes, content_type: str | None = None) -> None:
        path = self._path(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a partial object
            tmp = path.with_name(path.name + ".part")
            tmp.write_bytes(content)
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(f"Failed to store {key}: {exc}") from exc
        logger.debug(f"Stored {key} ({len(content)} bytes)")

    async def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to remove {key}: {exc}") from exc

    async def open(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise ObjectNotFound(key) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc
