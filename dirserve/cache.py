"""
Filesystem metadata cache for dirserve

Every resolve still stats the path. The cache remembers the last validated
modification time and file/directory classification of each absolute path
and reports whether a request could reuse them. Entries idle for longer
than the TTL are removed by a periodic sweep task.
"""

import asyncio
import stat
import logging
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import aiofiles.os

from .fs import NotFoundError, ForbiddenError
from .models import CacheEntry, FileInfo
from .utils import get_mime_type

logger = logging.getLogger(__name__)


class MetadataCache:
    """Thread-safe path -> CacheEntry store with TTL expiry"""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        # Guards _entries and the counters only; never held across a stat
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._sweep_task: Optional[asyncio.Task] = None

    async def resolve(self, absolute_path: Union[str, Path]) -> Tuple[FileInfo, bool]:
        """
        Stat a path and reconcile it with the cached entry

        Args:
            absolute_path: Path already approved by the path resolver

        Returns:
            (metadata from the fresh stat, whether the cached entry was valid)

        Raises:
            NotFoundError: If the path cannot be stat'ed
            ForbiddenError: If stat is denied
        """
        key = str(absolute_path)

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                cached = replace(cached)
        if cached is not None and self._clock() - cached.last_access > self.ttl:
            cached = None

        try:
            st = await aiofiles.os.stat(key)
        except PermissionError as e:
            self.invalidate(key)
            raise ForbiddenError(f"Permission denied: {key}") from e
        except (OSError, ValueError) as e:
            self.invalidate(key)
            raise NotFoundError(f"Not found: {key}") from e

        is_dir = stat.S_ISDIR(st.st_mode)
        mtime = st.st_mtime_ns
        now = self._clock()

        from_cache = (
            cached is not None
            and cached.modification_time == mtime
            and cached.is_directory == is_dir
        )

        with self._lock:
            if from_cache:
                self.hits += 1
                entry = self._entries.get(key)
                if entry is not None and entry.modification_time == mtime:
                    entry.last_access = now
                else:
                    self._entries[key] = CacheEntry(mtime, is_dir, now)
            else:
                self.misses += 1
                self._entries[key] = CacheEntry(mtime, is_dir, now)

        path = Path(key)
        info = FileInfo(
            name=path.name,
            path=key,
            size=st.st_size,
            is_dir=is_dir,
            modified=st.st_mtime,
            mime_type="" if is_dir else get_mime_type(path)
        )
        return info, from_cache

    def get(self, absolute_path: Union[str, Path]) -> Optional[CacheEntry]:
        """Get a copy of the cached entry, if any"""
        with self._lock:
            entry = self._entries.get(str(absolute_path))
            return replace(entry) if entry is not None else None

    def invalidate(self, absolute_path: Union[str, Path]) -> bool:
        """Drop the entry for a path"""
        with self._lock:
            removed = self._entries.pop(str(absolute_path), None) is not None
            if removed:
                self.evictions += 1
            return removed

    def clear(self):
        """Remove every entry"""
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove entries idle for longer than the TTL"""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if now - entry.last_access > self.ttl
            ]
            for key in expired:
                del self._entries[key]
            self.evictions += len(expired)

        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} entries")
        return len(expired)

    def start(self) -> asyncio.Task:
        """Start the periodic sweep on the running event loop"""
        if self._sweep_task is not None and not self._sweep_task.done():
            return self._sweep_task

        self._stop_event = asyncio.Event()
        self._sweep_task = asyncio.create_task(self._sweep_loop(self._stop_event))
        logger.info(f"Cache sweeper started (ttl={self.ttl}s)")
        return self._sweep_task

    async def stop(self):
        """Signal the sweep task and wait for it to exit"""
        if self._sweep_task is None:
            return

        self._stop_event.set()
        await self._sweep_task
        self._sweep_task = None
        self._stop_event = None
        logger.info("Cache sweeper stopped")

    async def _sweep_loop(self, stop_event: asyncio.Event):
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.ttl)
            except asyncio.TimeoutError:
                try:
                    self.sweep()
                except Exception as e:
                    logger.error(f"Cache sweep failed: {e}")

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, absolute_path) -> bool:
        with self._lock:
            return str(absolute_path) in self._entries

    def stats(self) -> Dict[str, Any]:
        """Cache statistics snapshot"""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "ttl": self.ttl,
            }
