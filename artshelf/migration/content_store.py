"""
Filesystem operations used by layout migration.

Every call is blocking I/O, so each one runs in a worker thread via
asyncio.to_thread and never stalls the other migration workers.
"""
import asyncio
import os
import shutil
from pathlib import Path


class ContentStore:
    """Async wrapper around the content root's filesystem."""

    async def exists(self, path: Path) -> bool:
        return await asyncio.to_thread(os.path.exists, path)

    async def is_dir(self, path: Path) -> bool:
        return await asyncio.to_thread(os.path.isdir, path)

    async def list_dir(self, path: Path) -> list[str]:
        return await asyncio.to_thread(os.listdir, path)

    async def make_dirs(self, path: Path) -> None:
        await asyncio.to_thread(os.makedirs, path, exist_ok=True)

    async def rename(self, src: Path, dest: Path) -> None:
        await asyncio.to_thread(os.rename, src, dest)

    async def copy_exclusive(self, src: Path, dest: Path) -> None:
        """Copy src to dest, raising FileExistsError if dest already exists."""
        await asyncio.to_thread(self._copy_exclusive, src, dest)

    def _copy_exclusive(self, src: Path, dest: Path) -> None:
        with open(src, "rb") as fsrc:
            # 'x' fails when the destination exists
            with open(dest, "xb") as fdest:
                try:
                    shutil.copyfileobj(fsrc, fdest)
                except BaseException:
                    fdest.close()
                    os.unlink(dest)
                    raise
        shutil.copystat(src, dest)

    async def size(self, path: Path) -> int:
        stat = await asyncio.to_thread(os.stat, path)
        return stat.st_size

    async def unlink(self, path: Path) -> None:
        await asyncio.to_thread(os.unlink, path)

    async def remove_dir(self, path: Path) -> None:
        """Remove an empty directory."""
        await asyncio.to_thread(os.rmdir, path)

    async def remove_entry(self, path: Path) -> None:
        """Remove a file or a whole directory tree, ignoring missing entries."""
        await asyncio.to_thread(self._remove_entry, path)

    def _remove_entry(self, path: Path) -> None:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path, ignore_errors=True)
        elif os.path.lexists(path):
            os.unlink(path)
