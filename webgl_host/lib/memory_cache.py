"""
In-memory cache for Unity build files.

The big build outputs (.wasm, .data, framework/loader scripts) are read
into RAM once at startup and then served without touching the disk.
There is no eviction and no invalidation: the table is filled by
``preload()`` before the HTTP listener binds and is read-only afterwards,
so lookups from concurrent requests need no locking.
"""

import asyncio
import logging
import os
from types import MappingProxyType

log = logging.getLogger(__name__)


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f} MB"


class CacheEntry:
    """Whole-file contents of one cached build file."""

    __slots__ = ("path", "data", "size_bytes")

    def __init__(self, path: str, data: bytes):
        self.path = path
        self.data = bytes(data)
        self.size_bytes = len(self.data)

    def __repr__(self):
        return f"CacheEntry({self.path!r}, {_mb(self.size_bytes)})"


class MemoryCache:
    """Preload-once table of build files keyed by their path relative to *root*."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        self._entries = MappingProxyType({})
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def is_initialized(self) -> bool:
        return self._initialized

    async def preload(self, paths) -> int:
        """Read every path in *paths* into memory. Returns the number cached.

        Missing or unreadable files are logged and skipped.  A second call
        after a successful preload does nothing.
        """
        if self._initialized:
            return len(self._entries)

        log.info("Loading %d build files into memory cache...", len(paths))
        loop = asyncio.get_running_loop()
        table = {}
        for rel in paths:
            key = rel.lstrip("/")
            file_path = os.path.join(self.root, key)
            try:
                data = await loop.run_in_executor(None, _read_file, file_path)
            except FileNotFoundError:
                log.warning("  Not cached, missing: %s", key)
                continue
            except OSError as e:
                log.error("  Failed to cache %s: %s", key, e)
                continue
            table[key] = CacheEntry(key, data)
            log.info("  Cached %s (%s)", key, _mb(len(data)))

        self._entries = MappingProxyType(table)
        self._initialized = True
        log.info("Cache initialized: %d files, %s in memory", len(table), _mb(self.total_bytes))
        return len(table)

    def lookup(self, path: str) -> CacheEntry | None:
        return self._entries.get(path)

    def entries(self) -> list:
        return list(self._entries.values())

    @property
    def total_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self._entries.values())

    def __len__(self):
        return len(self._entries)

    def __contains__(self, path):
        return path in self._entries


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
