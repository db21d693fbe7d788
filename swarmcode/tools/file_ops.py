"""Async project-rooted file access with path-traversal protection."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from swarmcode.errors import PathEscapeError

logger = logging.getLogger(__name__)

_SKIP_DIRS = frozenset({"node_modules", "__pycache__"})


@dataclass
class FileEntry:
    path: str
    size: int
    is_dir: bool


def safe_resolve(path: str, cwd: str) -> Path:
    """Resolve *path* relative to *cwd* and ensure it stays inside the tree."""
    root = Path(cwd).resolve()
    full = (root / path).resolve()
    if not (full == root or full.is_relative_to(root)):
        raise PathEscapeError(f"Path traversal blocked: '{path}' resolves outside project root")
    return full


class Workspace:
    """File operations confined to one project root.

    Every path is interpreted relative to ``root``; anything that resolves
    outside of it raises `PathEscapeError` before touching the disk.
    """

    def __init__(self, root: str) -> None:
        self.root = str(Path(root).resolve())

    def resolve(self, path: str) -> Path:
        return safe_resolve(path, self.root)

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    async def read_file(self, path: str) -> str:
        full = self.resolve(path)

        def _read() -> str:
            return full.read_text(encoding="utf-8", errors="replace")

        return await asyncio.get_running_loop().run_in_executor(None, _read)

    async def write_file(self, path: str, content: str) -> str:
        """Write *content* to *path*, creating parent directories.

        Returns the path relative to the root.
        """
        full = self.resolve(path)

        def _write() -> None:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")

        await asyncio.get_running_loop().run_in_executor(None, _write)
        logger.info("Wrote %d chars to %s", len(content), full)
        return str(full.relative_to(self.root))

    async def delete_file(self, path: str) -> bool:
        """Delete a file or directory tree.

        Idempotent: a missing target is not an error. Returns True when
        something was removed.
        """
        full = self.resolve(path)
        if str(full) == self.root:
            raise PathEscapeError(f"Refusing to delete the project root: '{path}'")

        def _delete() -> bool:
            if full.is_dir() and not full.is_symlink():
                shutil.rmtree(full)
                return True
            if full.exists() or full.is_symlink():
                full.unlink()
                return True
            return False

        removed = await asyncio.get_running_loop().run_in_executor(None, _delete)
        if removed:
            logger.info("Deleted %s", full)
        return removed

    async def list_files(self, path: str = ".") -> list[FileEntry]:
        """List files and directories under *path*, skipping hidden entries."""
        base = self.resolve(path)
        return await asyncio.get_running_loop().run_in_executor(None, self._list_sync, base)

    def _list_sync(self, base: Path) -> list[FileEntry]:
        root = Path(self.root)
        entries: list[FileEntry] = []
        if not base.is_dir():
            return entries
        for p in sorted(base.rglob("*")):
            rel = p.relative_to(root)
            if any(part.startswith(".") or part in _SKIP_DIRS for part in rel.parts):
                continue
            if p.is_dir():
                entries.append(FileEntry(path=str(rel), size=0, is_dir=True))
            else:
                entries.append(FileEntry(path=str(rel), size=p.stat().st_size, is_dir=False))
        return entries
