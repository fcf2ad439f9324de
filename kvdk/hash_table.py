"""Hash index mapping keys to records and collections."""

from __future__ import annotations

import contextlib
import enum
import hashlib
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from kvdk.allocator import ChunkBasedAllocator
from kvdk.records import DataEntry, DataHeader, DataMeta, RecordType
from kvdk.status import KVDKError, Status
from kvdk.structures import PointerType

BytesLike = Union[str, bytes, bytearray, memoryview]

HASH_ENTRY_SIZE = 16
_NEXT_POINTER_SIZE = 8


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def hash_key(key: BytesLike) -> int:
    """64-bit hash of ``key``."""
    digest = hashlib.blake2b(_as_bytes(key), digest_size=8).digest()
    return int.from_bytes(digest, "little")


class HashEntryStatus(enum.IntEnum):
    Persist = 0
    TTL = 1 << 0
    Expired = 1 << 1


_RECORD_POINTERS = (
    PointerType.StringRecord,
    PointerType.DLRecord,
    PointerType.UnorderedCollectionElement,
)
_NAMED_POINTERS = (PointerType.List, PointerType.UnorderedCollection)


def _indexed_record(index_type: PointerType, index: Any) -> Any:
    """The stored record an index points at, or None for in-memory-only objects."""
    if index is None:
        return None
    if index_type in _RECORD_POINTERS:
        return index
    if index_type == PointerType.SkiplistNode:
        return index.record
    if index_type == PointerType.Skiplist:
        return index.header.record
    return None


def _indexed_key(index_type: PointerType, index: Any) -> Optional[bytes]:
    if index is None:
        return None
    if index_type in _RECORD_POINTERS:
        return _as_bytes(index.key)
    if index_type == PointerType.SkiplistNode:
        return _as_bytes(index.record.key)
    if index_type in _NAMED_POINTERS or index_type == PointerType.Skiplist:
        return _as_bytes(index.name)
    return None


def _copy_entry(entry: DataEntry) -> DataEntry:
    header, meta = entry.header, entry.meta
    return DataEntry(
        DataHeader(header.checksum, header.record_size),
        DataMeta(meta.timestamp, meta.type, meta.k_size, meta.v_size),
    )


_State = Tuple[int, RecordType, PointerType, HashEntryStatus, Any]


class HashEntry:
    """One index slot; its whole content is replaced at once so readers see a consistent copy.

    Records are expected to expose ``key`` and ``entry``; skiplist nodes ``record``;
    skiplists ``name`` and ``header.record``; lists and unordered collections ``name``.
    """

    __slots__ = ("_state",)

    def __init__(
        self,
        key_prefix: int = 0,
        record_type: RecordType = RecordType.Empty,
        index: Any = None,
        index_type: PointerType = PointerType.Empty,
        entry_status: HashEntryStatus = HashEntryStatus.Persist,
    ) -> None:
        self._state: _State = (
            key_prefix,
            RecordType(record_type),
            PointerType(index_type),
            HashEntryStatus(entry_status),
            index,
        )

    @classmethod
    def _from_state(cls, state: _State) -> "HashEntry":
        entry = cls.__new__(cls)
        entry._state = state
        return entry

    def snapshot(self) -> "HashEntry":
        """A detached copy of the current content."""
        return self._from_state(self._state)

    @property
    def key_prefix(self) -> int:
        return self._state[0]

    @property
    def record_type(self) -> RecordType:
        return self._state[1]

    @property
    def index_type(self) -> PointerType:
        return self._state[2]

    @property
    def entry_status(self) -> HashEntryStatus:
        return self._state[3]

    @property
    def index(self) -> Any:
        return self._state[4]

    def is_empty(self) -> bool:
        return self.index_type == PointerType.Empty

    def is_expired_status(self) -> bool:
        return self.entry_status == HashEntryStatus.Expired

    def is_ttl_status(self) -> bool:
        return self.entry_status == HashEntryStatus.TTL

    def match(self, key: BytesLike, key_prefix: int, type_mask: int) -> bool:
        """True if this entry indexes ``key`` with a record type within ``type_mask``."""
        prefix, rtype, itype, _, index = self._state
        if not (int(type_mask) & int(rtype)) or prefix != key_prefix:
            return False
        stored = _indexed_key(itype, index)
        return stored is not None and stored == _as_bytes(key)

    def data_entry(self) -> Optional[DataEntry]:
        """Copy of the header and metadata of the indexed record, if it has one."""
        _, _, itype, _, index = self._state
        record = _indexed_record(itype, index)
        return None if record is None else _copy_entry(record.entry)

    def _clear(self) -> None:
        prefix, rtype, _, status, index = self._state
        self._state = (prefix, rtype, PointerType.Empty, status, index)

    def _set_status(self, entry_status: HashEntryStatus) -> None:
        prefix, rtype, itype, _, index = self._state
        self._state = (prefix, rtype, itype, HashEntryStatus(entry_status), index)

    def __repr__(self) -> str:
        return (
            f"HashEntry(key_prefix={self.key_prefix:#x}, record_type={self.record_type!r}, "
            f"index_type={self.index_type.name}, entry_status={self.entry_status.name})"
        )


@dataclass(frozen=True)
class KeyHashHint:
    """Where a key lives in the table and the lock guarding it."""

    key_hash_value: int
    bucket: int
    slot: int
    lock: Any = field(compare=False, repr=False)

    @property
    def key_prefix(self) -> int:
        return self.key_hash_value >> 32


@dataclass
class SearchResult:
    """Outcome of a lookup.

    ``entry`` is the live position (for writes, the position to fill when not
    found); ``snapshot`` and ``data_entry`` are copies taken when a match is found.
    """

    status: Status
    entry: Optional[HashEntry]
    snapshot: Optional[HashEntry] = None
    data_entry: Optional[DataEntry] = None

    @property
    def found(self) -> bool:
        return self.status == Status.Ok


@dataclass
class _Slot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    cache: Optional[HashEntry] = None


class HashTable:
    """Buckets of hash entries grouped into locked slots, each with a hot-entry cache."""

    def __init__(
        self,
        hash_bucket_num: int,
        hash_bucket_size: int,
        num_buckets_per_slot: int,
        max_access_threads: int = 48,
    ) -> None:
        if hash_bucket_num <= 0 or hash_bucket_num & (hash_bucket_num - 1):
            raise ValueError("hash_bucket_num must be a power of two")
        if hash_bucket_num >= 1 << 32:
            raise ValueError("hash_bucket_num must be smaller than 2^32")
        entries_per_bucket = (hash_bucket_size - _NEXT_POINTER_SIZE) // HASH_ENTRY_SIZE
        if entries_per_bucket < 1:
            raise ValueError("hash_bucket_size is too small to hold a hash entry")
        if num_buckets_per_slot <= 0 or hash_bucket_num % num_buckets_per_slot:
            raise ValueError("num_buckets_per_slot must divide hash_bucket_num")
        self._bucket_num = hash_bucket_num
        self._bucket_size = hash_bucket_size
        self._buckets_per_slot = num_buckets_per_slot
        self._entries_per_bucket = entries_per_bucket
        self._num_slots = hash_bucket_num // num_buckets_per_slot
        self._dram_allocator = ChunkBasedAllocator(max_access_threads)
        self._buckets: Dict[int, List[HashEntry]] = {}
        self._slots: Dict[int, _Slot] = {}
        self._slots_lock = threading.Lock()

    @property
    def hash_bucket_num(self) -> int:
        return self._bucket_num

    @property
    def num_buckets_per_slot(self) -> int:
        return self._buckets_per_slot

    @property
    def entries_per_bucket(self) -> int:
        return self._entries_per_bucket

    @property
    def num_slots(self) -> int:
        return self._num_slots

    def entry_count(self, bucket: int) -> int:
        """Number of entry positions used in ``bucket``, including erased ones."""
        return len(self._buckets.get(bucket, ()))

    def _slot(self, slot_id: int) -> _Slot:
        slot = self._slots.get(slot_id)
        if slot is None:
            with self._slots_lock:
                slot = self._slots.setdefault(slot_id, _Slot())
        return slot

    def get_hint(self, key: BytesLike) -> KeyHashHint:
        value = hash_key(key)
        bucket = value & (self._bucket_num - 1)
        slot = bucket // self._buckets_per_slot
        return KeyHashHint(value, bucket, slot, self._slot(slot).lock)

    @staticmethod
    def _found(entry: HashEntry, snap: HashEntry) -> SearchResult:
        return SearchResult(Status.Ok, entry, snap, snap.data_entry())

    def search_for_read(self, hint: KeyHashHint, key: BytesLike, type_mask: int) -> SearchResult:
        """Find ``key`` among records of ``type_mask`` without taking the slot lock."""
        prefix = hint.key_prefix
        slot = self._slot(hint.slot)
        cached = slot.cache
        if cached is not None:
            snap = cached.snapshot()
            if snap.match(key, prefix, type_mask):
                return self._found(cached, snap)

        for entry in tuple(self._buckets.get(hint.bucket, ())):
            while True:
                state = entry._state
                snap = HashEntry._from_state(state)
                if snap.match(key, prefix, type_mask):
                    slot.cache = entry
                    return self._found(entry, snap)
                # Retry if a writer replaced the entry while it was being matched.
                if entry._state is state:
                    break
        return SearchResult(Status.NotFound, None)

    def search_for_write(self, hint: KeyHashHint, key: BytesLike, type_mask: int) -> SearchResult:
        """Find ``key`` or a free position for it; the caller must hold ``hint.lock``.

        Raises KVDKError(MemoryOverflow) when a new bucket cannot be allocated.
        """
        prefix = hint.key_prefix
        slot = self._slot(hint.slot)
        cached = slot.cache
        if cached is not None:
            snap = cached.snapshot()
            if snap.match(key, prefix, type_mask):
                return self._found(cached, snap)

        entries = self._buckets.setdefault(hint.bucket, [])
        reusable: Optional[HashEntry] = None
        for entry in entries:
            snap = entry.snapshot()
            if snap.match(key, prefix, type_mask):
                slot.cache = entry
                return self._found(entry, snap)
            if entry.is_empty():
                reusable = entry

        count = len(entries)
        if count > 0 and count % self._entries_per_bucket == 0:
            if reusable is not None:
                return SearchResult(Status.NotFound, reusable)
            space = self._dram_allocator.allocate(self._bucket_size)
            if space.size == 0:
                raise KVDKError(Status.MemoryOverflow, "no memory for a new hash bucket")
        target = HashEntry()
        target._clear()
        entries.append(target)
        return SearchResult(Status.NotFound, target)

    def insert(
        self,
        hint: KeyHashHint,
        entry: HashEntry,
        record_type: RecordType,
        index: Any,
        index_type: PointerType,
        entry_status: HashEntryStatus = HashEntryStatus.Persist,
    ) -> None:
        """Fill ``entry`` (found by search_for_write) with a new index."""
        entry._state = HashEntry(
            hint.key_prefix, record_type, index, index_type, entry_status
        )._state

    def erase(self, entry: HashEntry) -> None:
        """Mark ``entry`` empty so it can be reused."""
        if entry is None:
            raise ValueError("cannot erase a missing hash entry")
        entry._clear()

    def update_entry_status(self, entry: HashEntry, entry_status: HashEntryStatus) -> None:
        if entry is None:
            raise ValueError("cannot update a missing hash entry")
        entry._set_status(entry_status)

    @contextlib.contextmanager
    def acquire_lock(self, key: BytesLike) -> Iterator[KeyHashHint]:
        """Hold the slot lock of ``key``; yields the key's hint."""
        hint = self.get_hint(key)
        with hint.lock:
            yield hint

    def iter_slots(self) -> Iterator[Tuple[int, List[HashEntry]]]:
        """Yield each slot id with its entries, holding the slot lock until the next step."""
        for slot_id in range(self._num_slots):
            slot = self._slot(slot_id)
            start = slot_id * self._buckets_per_slot
            with slot.lock:
                entries = [
                    entry
                    for bucket in range(start, start + self._buckets_per_slot)
                    for entry in self._buckets.get(bucket, ())
                ]
                yield slot_id, entries