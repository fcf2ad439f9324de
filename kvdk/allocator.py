"""Space allocators handing out offsets into managed memory."""

from __future__ import annotations

import abc
import bisect
import threading
from dataclasses import dataclass, field
from typing import Dict, List

from kvdk.status import KVDKError, Status

_ALIGN = 64


@dataclass
class SpaceEntry:
    """A region of allocated space; size 0 means the allocation failed."""

    offset: int = 0
    size: int = 0


class Allocator(abc.ABC):
    @abc.abstractmethod
    def allocate(self, size: int) -> SpaceEntry:
        """Reserve ``size`` bytes."""

    @abc.abstractmethod
    def free(self, entry: SpaceEntry) -> None:
        """Give back a region."""


@dataclass
class _ThreadCache:
    chunk_offset: int = 0
    usable_bytes: int = 0
    allocated_chunks: List[int] = field(default_factory=list)


class ChunkBasedAllocator(Allocator):
    """Carves allocations out of per-thread chunks; freed space is not reused."""

    def __init__(self, max_access_threads: int, chunk_size: int = 1 << 20) -> None:
        if max_access_threads <= 0:
            raise ValueError("max_access_threads must be positive")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size
        self._caches = [_ThreadCache() for _ in range(max_access_threads)]
        self._local = threading.local()
        self._lock = threading.Lock()
        self._next_slot = 0
        self._bases: List[int] = []
        self._chunks: Dict[int, bytearray] = {}
        # Offset 0 stays unused so it can stand for "no space".
        self._next_base = _ALIGN

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def _thread_cache(self) -> _ThreadCache:
        slot = getattr(self._local, "slot", None)
        if slot is None:
            with self._lock:
                if self._next_slot >= len(self._caches):
                    raise KVDKError(Status.TooManyAccessThreads, "no free access thread slot")
                slot = self._next_slot
                self._next_slot += 1
            self._local.slot = slot
        return self._caches[slot]

    def _new_chunk(self, cache: _ThreadCache, size: int):
        try:
            buf = bytearray(size)
        except MemoryError:
            return None
        with self._lock:
            base = self._next_base
            self._next_base += -(-size // _ALIGN) * _ALIGN
            self._bases.append(base)
            self._chunks[base] = buf
        cache.allocated_chunks.append(base)
        return base

    def allocate(self, size: int) -> SpaceEntry:
        if size < 0:
            raise ValueError("size must not be negative")
        cache = self._thread_cache()
        if size > self._chunk_size:
            base = self._new_chunk(cache, size)
            return SpaceEntry() if base is None else SpaceEntry(base, size)
        if cache.usable_bytes < size:
            base = self._new_chunk(cache, self._chunk_size)
            if base is None:
                return SpaceEntry()
            cache.chunk_offset = base
            cache.usable_bytes = self._chunk_size
        entry = SpaceEntry(cache.chunk_offset, size)
        cache.chunk_offset += size
        cache.usable_bytes -= size
        return entry

    def free(self, entry: SpaceEntry) -> None:
        """Freeing is not supported; space is reclaimed only with the allocator."""

    def view(self, offset: int, size: int) -> memoryview:
        """Writable view of ``size`` bytes at ``offset``."""
        if size < 0:
            raise ValueError("size must not be negative")
        with self._lock:
            idx = bisect.bisect_right(self._bases, offset) - 1
            if idx < 0:
                raise ValueError("offset is not inside allocated space")
            base = self._bases[idx]
            buf = self._chunks[base]
        start = offset - base
        if start + size > len(buf):
            raise ValueError("region is not inside allocated space")
        return memoryview(buf)[start:start + size]