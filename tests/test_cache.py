"""
Tests for the filesystem metadata cache
"""

import asyncio
import os
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from dirserve.cache import MetadataCache
from dirserve.fs import NotFoundError


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def bump_mtime(path: Path, seconds: int = 10):
    st = path.stat()
    new_mtime = st.st_mtime_ns + seconds * 1_000_000_000
    os.utime(path, ns=(st.st_atime_ns, new_mtime))


class TestMetadataCache:
    """Test MetadataCache resolve and expiry"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.file_path = self.temp_dir / "page.html"
        self.file_path.write_text("<p>hello</p>")
        (self.temp_dir / "docs").mkdir()
        self.clock = FakeClock()
        self.cache = MetadataCache(ttl=10, clock=self.clock)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def resolve(self, path):
        return asyncio.run(self.cache.resolve(path))

    def test_first_resolve_is_miss(self):
        info, from_cache = self.resolve(self.file_path)

        assert from_cache is False
        assert info.is_dir is False
        assert info.size == len("<p>hello</p>")
        assert info.mime_type == "text/html"
        assert self.file_path in self.cache
        assert len(self.cache) == 1

    def test_second_resolve_is_hit(self):
        self.resolve(self.file_path)
        self.clock.advance(3)
        info, from_cache = self.resolve(self.file_path)

        assert from_cache is True
        assert info.size == len("<p>hello</p>")
        assert self.cache.get(self.file_path).last_access == self.clock.now
        assert self.cache.stats()["hits"] == 1
        assert self.cache.stats()["misses"] == 1

    def test_directory_classification(self):
        info, _ = self.resolve(self.temp_dir / "docs")

        assert info.is_dir is True
        assert info.mime_type == ""
        assert self.cache.get(self.temp_dir / "docs").is_directory is True

    def test_modified_file_refreshes_within_ttl(self):
        first, _ = self.resolve(self.file_path)
        old_entry = self.cache.get(self.file_path)

        self.file_path.write_text("<p>hello, much longer now</p>")
        bump_mtime(self.file_path)
        self.clock.advance(1)

        info, from_cache = self.resolve(self.file_path)
        assert from_cache is False
        assert info.size == len("<p>hello, much longer now</p>")
        assert info.size != first.size
        assert self.cache.get(self.file_path).modification_time != old_entry.modification_time

    def test_file_replaced_by_directory(self):
        self.resolve(self.file_path)

        self.file_path.unlink()
        self.file_path.mkdir()
        bump_mtime(self.file_path)

        info, from_cache = self.resolve(self.file_path)
        assert info.is_dir is True
        assert from_cache is False
        assert self.cache.get(self.file_path).is_directory is True

    def test_missing_path_raises_not_found(self):
        with pytest.raises(NotFoundError):
            self.resolve(self.temp_dir / "missing.txt")
        assert len(self.cache) == 0

    def test_deleted_file_is_evicted(self):
        self.resolve(self.file_path)
        self.file_path.unlink()

        with pytest.raises(NotFoundError):
            self.resolve(self.file_path)
        assert self.file_path not in self.cache

    def test_idle_entry_not_trusted(self):
        self.resolve(self.file_path)
        self.clock.advance(11)

        _, from_cache = self.resolve(self.file_path)
        assert from_cache is False

    def test_get_returns_copy(self):
        self.resolve(self.file_path)
        entry = self.cache.get(self.file_path)
        entry.last_access = 0

        assert self.cache.get(self.file_path).last_access == self.clock.now

    def test_invalidate_and_clear(self):
        self.resolve(self.file_path)
        self.resolve(self.temp_dir / "docs")

        assert self.cache.invalidate(self.file_path) is True
        assert self.cache.invalidate(self.file_path) is False
        assert len(self.cache) == 1

        self.cache.clear()
        assert len(self.cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            MetadataCache(ttl=0)


class TestCacheSweep:
    """Test periodic expiry"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.idle = self.temp_dir / "idle.txt"
        self.busy = self.temp_dir / "busy.txt"
        self.idle.write_text("idle")
        self.busy.write_text("busy")
        self.clock = FakeClock()
        self.cache = MetadataCache(ttl=10, clock=self.clock)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_idle_entry_removed_after_sweep(self):
        asyncio.run(self.cache.resolve(self.idle))

        self.clock.advance(10)
        assert self.cache.sweep() == 0
        assert self.idle in self.cache

        self.clock.advance(1)
        assert self.cache.sweep() == 1
        assert self.idle not in self.cache
        assert self.cache.stats()["evictions"] == 1

    def test_entry_accessed_every_cycle_never_expires(self):
        asyncio.run(self.cache.resolve(self.busy))
        asyncio.run(self.cache.resolve(self.idle))

        for _ in range(5):
            self.clock.advance(8)
            asyncio.run(self.cache.resolve(self.busy))
            self.cache.sweep()

        assert self.busy in self.cache
        assert self.idle not in self.cache

    def test_sweeper_task_runs_and_stops(self):
        cache = MetadataCache(ttl=0.05)

        async def scenario():
            cache.start()
            assert cache.running
            await cache.resolve(self.idle)
            assert self.idle in cache
            await asyncio.sleep(0.3)
            assert self.idle not in cache
            await cache.stop()
            assert not cache.running

        asyncio.run(scenario())

    def test_stop_without_start(self):
        asyncio.run(self.cache.stop())
        assert not self.cache.running


class TestCacheConcurrency:
    """Concurrent resolves of the same path"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.file_path = self.temp_dir / "shared.bin"
        self.file_path.write_bytes(b"\x00" * 4096)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_concurrent_resolves_are_consistent(self):
        cache = MetadataCache(ttl=60)

        async def scenario():
            return await asyncio.gather(
                *(cache.resolve(self.file_path) for _ in range(50))
            )

        results = asyncio.run(scenario())

        infos = [info for info, _ in results]
        assert all(info.size == 4096 for info in infos)
        assert all(info.is_dir is False for info in infos)
        assert all(info.mime_type == "application/octet-stream" for info in infos)
        assert len(cache) == 1

        stats = cache.stats()
        assert stats["hits"] + stats["misses"] == 50
        assert cache.get(self.file_path).modification_time == self.file_path.stat().st_mtime_ns

    def test_resolves_and_sweeps_across_threads(self):
        cache = MetadataCache(ttl=0.001)
        resolves_per_worker = 25
        workers = 8

        def resolve_many():
            for _ in range(resolves_per_worker):
                info, _ = asyncio.run(cache.resolve(self.file_path))
                assert info.size == 4096

        def sweep_many():
            return sum(cache.sweep() for _ in range(200))

        def touch_many():
            for _ in range(5):
                bump_mtime(self.file_path, seconds=1)

        with ThreadPoolExecutor(max_workers=workers + 3) as pool:
            futures = [pool.submit(resolve_many) for _ in range(workers)]
            futures += [pool.submit(sweep_many) for _ in range(2)]
            futures.append(pool.submit(touch_many))
            for future in futures:
                future.result()

        asyncio.run(cache.resolve(self.file_path))

        entry = cache.get(self.file_path)
        assert entry is not None
        assert entry.modification_time == self.file_path.stat().st_mtime_ns
        assert entry.is_directory is False
        assert len(cache) == 1

        stats = cache.stats()
        assert stats["hits"] + stats["misses"] == workers * resolves_per_worker + 1
