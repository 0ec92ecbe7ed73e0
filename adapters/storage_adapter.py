"""
File storage adapter for uploaded evidence documents.
"""

import asyncio
import os
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from common.exceptions import StorageException
from common.logging import get_logger

logger = get_logger("storage_adapter")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    name = os.path.basename(filename or "").strip() or "document"
    name = _UNSAFE_CHARS.sub("_", name)
    return name[:150]


class BaseStorageAdapter(ABC):
    """Abstract file store: raw bytes in, raw bytes out."""

    @abstractmethod
    async def save(self, conversation_id: str, filename: str, data: bytes) -> str:
        """Persist bytes and return the storage path."""
        pass

    @abstractmethod
    async def read_bytes(self, path: str) -> bytes:
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        pass


class LocalFileStorageAdapter(BaseStorageAdapter):
    """Stores files under <root>/<conversation_id>/<uuid>-<name>."""

    def __init__(self, root_dir: str):
        self.root = Path(root_dir).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if self.root not in resolved.parents and resolved != self.root:
            raise StorageException("Storage path escapes the upload directory", path, "STORAGE_PATH_INVALID")
        return resolved

    async def save(self, conversation_id: str, filename: str, data: bytes) -> str:
        relative = f"{safe_filename(conversation_id)}/{uuid.uuid4().hex}-{safe_filename(filename)}"
        target = self._resolve(relative)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.get_running_loop().run_in_executor(None, _write)
        except OSError as e:
            logger.error(f"Failed to store {filename}: {e}", exc_info=True)
            raise StorageException("Failed to store uploaded file", relative, "STORAGE_WRITE_FAILED")
        logger.debug(f"Stored {filename} at {relative} ({len(data)} bytes)")
        return relative

    async def read_bytes(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.get_running_loop().run_in_executor(None, target.read_bytes)
        except FileNotFoundError:
            raise StorageException("Stored file not found", path, "STORAGE_FILE_MISSING")
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}", exc_info=True)
            raise StorageException("Stored file could not be read", path, "STORAGE_READ_FAILED")

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def _unlink() -> bool:
            if not target.exists():
                return False
            target.unlink()
            return True

        try:
            return await asyncio.get_running_loop().run_in_executor(None, _unlink)
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}", exc_info=True)
            raise StorageException("Stored file could not be removed", path, "STORAGE_DELETE_FAILED")
