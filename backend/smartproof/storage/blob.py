"""
Key-addressable blob storage.

The workflow engine only needs four operations on a blob store:
read, write, exists and list.  Keys are "/"-separated paths such as
"doc-123/workflow-state.json".

Implementations:
    - MemoryBlobStore: process-local dict (tests, demos)
    - LocalBlobStore:  a directory on disk, one file per key
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from smartproof.core.logging import get_logger

logger = get_logger(__name__)


class BlobNotFoundError(KeyError):
    """The requested key does not exist."""


class BlobStore(ABC):
    """Minimal async blob store interface."""

    @abstractmethod
    async def read(self, key: str) -> bytes:
        """Return the blob content.  Raise BlobNotFoundError if missing."""
        ...

    @abstractmethod
    async def write(
        self,
        key: str,
        content: bytes | str,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Create or replace a blob."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def list(self, prefix: str = "") -> list[str]:
        """Sorted keys starting with `prefix`."""
        ...


def _validate_key(key: str) -> str:
    path = PurePosixPath(key)
    if not key or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Invalid blob key: {key!r}")
    return key


def _to_bytes(content: bytes | str) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


class MemoryBlobStore(BlobStore):
    """Dict-backed blob store."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}

    async def read(self, key: str) -> bytes:
        try:
            return self._blobs[_validate_key(key)]
        except KeyError:
            raise BlobNotFoundError(key) from None

    async def write(
        self,
        key: str,
        content: bytes | str,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._blobs[_validate_key(key)] = _to_bytes(content)
        self.content_types[key] = content_type

    async def exists(self, key: str) -> bool:
        return _validate_key(key) in self._blobs

    async def list(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._blobs if key.startswith(prefix))


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed blob store rooted at `root`.

    Writes go to a temp file in the target directory and are moved into
    place with os.replace, so readers never see a half-written blob.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*PurePosixPath(_validate_key(key)).parts)

    async def read(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise BlobNotFoundError(key) from None

    async def write(
        self,
        key: str,
        content: bytes | str,
        content_type: str = "application/octet-stream",
    ) -> None:
        await asyncio.to_thread(self._write_atomic, self._path(key), _to_bytes(content))
        logger.debug("Blob written", key=key, content_type=content_type)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def list(self, prefix: str = "") -> list[str]:
        def _scan() -> list[str]:
            keys = []
            for path in self.root.rglob("*"):
                if path.is_file() and not path.name.startswith("."):
                    key = path.relative_to(self.root).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
            return sorted(keys)

        return await asyncio.to_thread(_scan)
