"""
Local filesystem artifact store.

Artifacts live as flat files directly under a single root directory
(default: ./output relative to the running process). Writes go to a
temporary sibling first and are moved into place with os.replace, so a
reader never observes a half-written artifact.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from agent_extraction.core.errors import ArtifactStoreError
from agent_extraction.storage.base import ArtifactStore

logger = logging.getLogger(__name__)


class FileSystemArtifactStore(ArtifactStore):

    def __init__(self, root: str | Path = "output") -> None:
        self._root = Path(root)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, name: str) -> Path:
        """Resolve an artifact name to its file path. Names are flat keys."""
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ArtifactStoreError(f"Invalid artifact name: {name!r}")
        return self._root / name

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def save(self, name: str, data: bytes) -> None:
        path = self.path_for(name)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write_sync, path, data)
        except OSError as exc:
            logger.error("Artifact save failed | name=%s root=%s error=%s", name, self._root, exc)
            raise ArtifactStoreError(f"Failed to save artifact {name}") from exc

        logger.info("Artifact saved | name=%s size=%d root=%s", name, len(data), self._root)

    async def read(self, name: str) -> bytes | None:
        path = self.path_for(name)
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._read_sync, path)
        except OSError as exc:
            logger.error("Artifact read failed | name=%s root=%s error=%s", name, self._root, exc)
            raise ArtifactStoreError(f"Failed to read artifact {name}") from exc

        if data is None:
            logger.debug("Artifact not found | name=%s root=%s", name, self._root)
        return data

    # ------------------------------------------------------------------
    # Blocking helpers (default executor)
    # ------------------------------------------------------------------

    @staticmethod
    def _write_sync(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _read_sync(path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
