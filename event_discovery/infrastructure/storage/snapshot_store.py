"""
Local Snapshot Repositories

In-process and file-backed implementations of CacheSnapshotRepository.
"""

import asyncio
import re
from pathlib import Path
from typing import Dict, Optional, Union

import structlog

from ...domain.cache.repository_interfaces import CacheSnapshotRepository

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class InMemorySnapshotRepository(CacheSnapshotRepository):
    """Dictionary-backed store; survives engine restarts, not process restarts."""

    def __init__(self):
        self._documents: Dict[str, str] = {}

    async def save(self, key: str, payload: str) -> None:
        self._documents[key] = payload

    async def load(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    async def remove(self, key: str) -> None:
        self._documents.pop(key, None)


class FileSnapshotRepository(CacheSnapshotRepository):
    """
    One JSON document per key under a directory.

    Writes go to a temporary file that is renamed into place so a crash
    mid-write never leaves a truncated snapshot behind.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def _write(self, key: str, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _unlink(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def save(self, key: str, payload: str) -> None:
        await asyncio.to_thread(self._write, key, payload)
        logger.debug("Snapshot written", key=key, path=str(self._path(key)))

    async def load(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._unlink, key)
