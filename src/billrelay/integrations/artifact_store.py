"""Filesystem-backed artifact store for generated QR images.

Files are written under ``ARTIFACT_DIR`` and served by the app at
``/artifacts``; the public URL handed to LINE is built from
``PUBLIC_BASE_URL``. Blocking file I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from billrelay.config import settings

ARTIFACT_URL_PREFIX = "/artifacts"


class ArtifactStoreError(Exception):
    """Raised when an artifact cannot be written or addressed."""


@dataclass(frozen=True)
class StoredArtifact:
    """Metadata for one stored object."""

    name: str
    size: int
    created_at: datetime


class LocalArtifactStore:
    """Stores artifacts on local disk and returns their public URLs."""

    def __init__(self, root: str | Path | None = None, public_base_url: str | None = None) -> None:
        self.root = Path(root or settings.ARTIFACT_DIR).resolve()
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(self, name: str, data: bytes) -> str:
        """Write *data* under *name* and return its public URL."""
        path = self._path_for(name)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise ArtifactStoreError(f"Cannot write artifact {name}: {exc}") from exc
        return self.url_for(name)

    def url_for(self, name: str) -> str:
        return f"{self.public_base_url}{ARTIFACT_URL_PREFIX}/{PurePosixPath(name)}"

    async def list_artifacts(self, prefix: str = "") -> list[StoredArtifact]:
        """List stored artifacts whose name starts with *prefix*."""
        return await asyncio.to_thread(self._scan, prefix)

    async def delete(self, name: str) -> None:
        path = self._path_for(name)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _path_for(self, name: str) -> Path:
        """Resolve *name* inside the store root, rejecting escapes."""
        path = (self.root / name).resolve()
        if not path.is_relative_to(self.root):
            raise ArtifactStoreError(f"Artifact name escapes store root: {name!r}")
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".part")
        tmp.write_bytes(data)
        tmp.replace(path)

    def _scan(self, prefix: str) -> list[StoredArtifact]:
        items: list[StoredArtifact] = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.suffix == ".part":
                continue
            name = path.relative_to(self.root).as_posix()
            if not name.startswith(prefix):
                continue
            stat = path.stat()
            items.append(
                StoredArtifact(
                    name=name,
                    size=stat.st_size,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return sorted(items, key=lambda item: item.created_at)
