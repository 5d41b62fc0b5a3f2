# prismo/services/cache_manager.py

import asyncio
import os
import shutil

from ..config import logger


def _entry_size(path: str) -> int:
    """Size of a file, or the recursive size of a directory."""
    if os.path.isfile(path) or os.path.islink(path):
        return os.lstat(path).st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                continue
    return total


def _delete_entry(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


class CacheManager:
    """
    Keeps the shared download directory under a size limit by deleting its
    oldest top-level entries first.
    """

    def __init__(self, download_dir: str, limit_bytes: int) -> None:
        self.download_dir = download_dir
        self.limit_bytes = max(int(limit_bytes), 0)

    def _scan(self) -> list[tuple[str, float, int]]:
        """(path, mtime, size) of every top-level entry, oldest first."""
        entries = []
        with os.scandir(self.download_dir) as it:
            for entry in it:
                try:
                    mtime = entry.stat(follow_symlinks=False).st_mtime
                    size = _entry_size(entry.path)
                except OSError as exc:
                    logger.warning(f"[CACHE] Could not stat '{entry.path}': {exc}")
                    continue
                entries.append((entry.path, mtime, size))
        entries.sort(key=lambda item: (item[1], item[0]))
        return entries

    def _enforce_quota(self) -> list[str]:
        if not os.path.isdir(self.download_dir):
            return []

        entries = self._scan()
        total = sum(size for _path, _mtime, size in entries)
        if total <= self.limit_bytes:
            logger.info(
                f"[CACHE] Cache holds {total} bytes, within the "
                f"{self.limit_bytes} byte limit."
            )
            return []

        logger.info(
            f"[CACHE] Cache holds {total} bytes, over the {self.limit_bytes} byte "
            "limit. Deleting oldest entries."
        )
        deleted = []
        for path, _mtime, size in entries:
            if total <= self.limit_bytes:
                break
            try:
                _delete_entry(path)
            except OSError as exc:
                logger.error(f"[CACHE] Failed to delete '{path}': {exc}")
                continue
            total -= size
            deleted.append(path)
            logger.info(f"[CACHE] Deleted '{path}' ({size} bytes).")
        return deleted

    def _clear(self) -> list[str]:
        if not os.path.isdir(self.download_dir):
            return []
        deleted = []
        for path, _mtime, _size in self._scan():
            try:
                _delete_entry(path)
            except OSError as exc:
                logger.error(f"[CACHE] Failed to delete '{path}': {exc}")
                continue
            deleted.append(path)
        logger.info(f"[CACHE] Cleared {len(deleted)} entries from the cache.")
        return deleted

    async def enforce_quota(self) -> list[str]:
        """Deletes the oldest entries until the cache fits the limit."""
        return await asyncio.to_thread(self._enforce_quota)

    async def clear(self) -> list[str]:
        return await asyncio.to_thread(self._clear)
