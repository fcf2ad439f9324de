"""Doubly linked lists of records kept in a record pool.

Forward links are always kept valid. Backward links may be left broken if a
write is interrupted, and are repaired when a list is rebuilt with
``DLinkedList.from_existing``. Lists never free data records themselves;
whoever unlinks a record is responsible for freeing it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple, Union

from kvdk.allocator import ChunkBasedAllocator
from kvdk.collection import Collection
from kvdk.records import DLRecord, RecordType
from kvdk.structures import to_hex

BytesLike = Union[str, bytes, bytearray, memoryview]

# Offset that refers to no record; the pool never hands it out.
NULL_OFFSET = 0


class RecordPool:
    """Stores serialised DLRecords at offsets handed out by an allocator."""

    def __init__(self, capacity: Optional[int] = None, max_access_threads: int = 64) -> None:
        if capacity is not None and capacity < 0:
            raise ValueError("capacity must not be negative")
        self._capacity = capacity
        self._allocator = ChunkBasedAllocator(max_access_threads)
        self._sizes: Dict[int, int] = {}
        self._used = 0
        self._lock = threading.Lock()

    @property
    def used_bytes(self) -> int:
        """Bytes held by records that have not been freed."""
        return self._used

    def __len__(self) -> int:
        return len(self._sizes)

    def __contains__(self, offset: object) -> bool:
        return offset in self._sizes

    def store(self, record: DLRecord) -> int:
        """Write ``record`` into newly allocated space and return its offset.

        Raises MemoryError when the pool has no room for it.
        """
        data = record.to_bytes()
        size = len(data)
        with self._lock:
            if self._capacity is not None and self._used + size > self._capacity:
                raise MemoryError("record pool is out of space")
            space = self._allocator.allocate(size)
            if space.size == 0:
                raise MemoryError("record pool is out of space")
            self._allocator.view(space.offset, size)[:] = data
            self._sizes[space.offset] = size
            self._used += size
        return space.offset

    def load(self, offset: int) -> Optional[DLRecord]:
        """Read the record at ``offset``; None for the null offset.

        Raises KeyError for an offset that holds no record.
        """
        if offset == NULL_OFFSET:
            return None
        with self._lock:
            size = self._sizes.get(offset)
            if size is None:
                raise KeyError(offset)
            data = bytes(self._allocator.view(offset, size))
        return DLRecord.from_bytes(data)

    def update(self, offset: int, record: DLRecord) -> None:
        """Overwrite the record at ``offset``; its serialised size must not change."""
        data = record.to_bytes()
        with self._lock:
            size = self._sizes.get(offset)
            if size is None:
                raise KeyError(offset)
            if len(data) != size:
                raise ValueError("updated record does not fit its allocated space")
            self._allocator.view(offset, size)[:] = data

    def free(self, offset: int) -> None:
        """Release the record at ``offset``."""
        with self._lock:
            size = self._sizes.pop(offset, None)
            if size is None:
                raise KeyError(offset)
            self._used -= size
        self._allocator.free_entry = None  # allocator keeps no reuse list
        # The chunk allocator does not reclaim space; the pool only stops tracking it.


@dataclass(frozen=True)
class DListCursor:
    """A position in a linked list, identified by a record offset."""

    pool: RecordPool
    offset: int
    types: Tuple[RecordType, ...] = field(default=(), compare=False, repr=False)

    def _load(self) -> Optional[DLRecord]:
        try:
            return self.pool.load(self.offset)
        except KeyError:
            return None

    def valid(self) -> bool:
        """True when the cursor is on a head, tail or data record of its list."""
        record = self._load()
        return record is not None and record.entry.meta.type in self.types

    def __bool__(self) -> bool:
        return self.valid()

    def record(self) -> DLRecord:
        """The record under the cursor."""
        record = self._load()
        if record is None:
            raise ValueError("cursor is not on a record")
        return record

    def next(self) -> "DListCursor":
        """Cursor on the following record."""
        return DListCursor(self.pool, self.record().next, self.types)

    def prev(self) -> "DListCursor":
        """Cursor on the preceding record."""
        return DListCursor(self.pool, self.record().prev, self.types)


class DLinkedList:
    """A list bounded by a head and a tail record, with data records between them."""

    def __init__(
        self,
        pool: RecordPool,
        timestamp: int,
        key: BytesLike,
        value: BytesLike,
        head_type: RecordType = RecordType.DlistHeadRecord,
        tail_type: RecordType = RecordType.DlistTailRecord,
        data_type: RecordType = RecordType.DlistDataRecord,
    ) -> None:
        self._setup(pool, head_type, tail_type, data_type)
        # The tail is written first: a lone tail can be reclaimed at recovery.
        tail = self._make_record(timestamp, tail_type, NULL_OFFSET, NULL_OFFSET, key, value)
        tail_offset = pool.store(tail)
        head = self._make_record(timestamp, head_type, NULL_OFFSET, tail_offset, key, value)
        try:
            head_offset = pool.store(head)
        except MemoryError:
            pool.free(tail_offset)
            raise
        tail.prev = head_offset
        pool.update(tail_offset, tail)
        self._head_offset = head_offset
        self._tail_offset = tail_offset

    def _setup(self, pool: RecordPool, head_type: RecordType,
               tail_type: RecordType, data_type: RecordType) -> None:
        self._pool = pool
        self._head_type = RecordType(head_type)
        self._tail_type = RecordType(tail_type)
        self._data_type = RecordType(data_type)
        self._types = (self._head_type, self._tail_type, self._data_type)

    @staticmethod
    def _make_record(timestamp: int, record_type: RecordType, prev: int, nxt: int,
                     key: BytesLike, value: BytesLike) -> DLRecord:
        key_b = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        value_b = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        size = DLRecord.HEADER_SIZE + len(key_b) + len(value_b)
        return DLRecord.construct(size, timestamp, record_type, NULL_OFFSET,
                                  prev, nxt, key_b, value_b)

    @classmethod
    def from_existing(
        cls,
        pool: RecordPool,
        head_offset: int,
        tail_offset: int,
        head_type: RecordType = RecordType.DlistHeadRecord,
        tail_type: RecordType = RecordType.DlistTailRecord,
        data_type: RecordType = RecordType.DlistDataRecord,
    ) -> "DLinkedList":
        """Rebuild a list from stored head and tail records, repairing backward links.

        Raises ValueError if the head is not a head record, a non-list record is
        met while walking forward, or the walk ends at a different tail.
        """
        dlist = cls.__new__(cls)
        dlist._setup(pool, head_type, tail_type, data_type)
        dlist._head_offset = head_offset
        dlist._tail_offset = tail_offset

        head = dlist.head()
        if not head.valid() or head.record().entry.meta.type != dlist._head_type:
            raise ValueError("offset does not point to a valid head record")
        curr = head.next()
        while True:
            record = curr._load()
            rtype = None if record is None else record.entry.meta.type
            if rtype == dlist._data_type:
                nxt = curr.next()
                nxt_record = nxt.record()
                if nxt_record.prev != curr.offset:
                    nxt_record.prev = curr.offset
                    pool.update(nxt.offset, nxt_record)
                curr = nxt
            elif rtype == dlist._tail_type:
                if curr.offset != tail_offset:
                    raise ValueError("head and tail do not belong to the same list")
                return dlist
            else:
                raise ValueError("invalid record found while walking the list")

    def _cursor(self, offset: int) -> DListCursor:
        return DListCursor(self._pool, offset, self._types)

    def head(self) -> DListCursor:
        return self._cursor(self._head_offset)

    def tail(self) -> DListCursor:
        return self._cursor(self._tail_offset)

    def first(self) -> DListCursor:
        """First data record; raises IndexError on an empty list."""
        cursor = self.head().next()
        if cursor.record().entry.meta.type != self._data_type:
            raise IndexError("first() on an empty list")
        return cursor

    def last(self) -> DListCursor:
        """Last data record; raises IndexError on an empty list."""
        cursor = self.tail().prev()
        if cursor.record().entry.meta.type != self._data_type:
            raise IndexError("last() on an empty list")
        return cursor

    def _link(self, prev: DListCursor, nxt: DListCursor) -> None:
        prev_record = prev.record()
        prev_record.next = nxt.offset
        self._pool.update(prev.offset, prev_record)
        next_record = nxt.record()
        next_record.prev = prev.offset
        self._pool.update(nxt.offset, next_record)

    def erase(self, pos: DListCursor) -> DListCursor:
        """Unlink the record at ``pos`` and return a cursor on its successor.

        The unlinked record is not freed.
        """
        prev, nxt = pos.prev(), pos.next()
        if not (prev.valid() and nxt.valid()):
            raise ValueError("invalid cursor in linked list")
        self._link(prev, nxt)
        return nxt

    def pop_front(self) -> DListCursor:
        """Unlink the first data record; return a cursor on the unlinked record."""
        pos = self.first()
        self.erase(pos)
        return pos

    def pop_back(self) -> DListCursor:
        """Unlink the last data record; return a cursor on the unlinked record."""
        pos = self.last()
        self.erase(pos)
        return pos

    def emplace_front(self, timestamp: int, key: BytesLike, value: BytesLike) -> DListCursor:
        return self.emplace_after(self.head(), timestamp, key, value)

    def emplace_back(self, timestamp: int, key: BytesLike, value: BytesLike) -> DListCursor:
        return self.emplace_before(self.tail(), timestamp, key, value)

    def emplace_before(self, pos: DListCursor, timestamp: int,
                       key: BytesLike, value: BytesLike) -> DListCursor:
        return self._emplace_between(pos.prev(), pos, timestamp, key, value)

    def emplace_after(self, pos: DListCursor, timestamp: int,
                      key: BytesLike, value: BytesLike) -> DListCursor:
        return self._emplace_between(pos, pos.next(), timestamp, key, value)

    def replace(self, pos: DListCursor, timestamp: int,
                key: BytesLike, value: BytesLike) -> DListCursor:
        """Put a new record in place of ``pos``; the old record is not freed."""
        return self._emplace_between(pos.prev(), pos.next(), timestamp, key, value)

    def _emplace_between(self, prev: DListCursor, nxt: DListCursor, timestamp: int,
                         key: BytesLike, value: BytesLike) -> DListCursor:
        """Write a new data record and link it between ``prev`` and ``nxt``.

        Records between the two, if any, are dropped from the list. Raises
        MemoryError when no space is left.
        """
        if not (prev.valid() and nxt.valid()):
            raise ValueError("invalid cursor in linked list")
        record = self._make_record(timestamp, self._data_type, prev.offset, nxt.offset, key, value)
        offset = self._pool.store(record)
        new = self._cursor(offset)
        self._link(prev, new)
        self._link(new, nxt)
        return new

    def _purge_and_free(self, offset: int) -> None:
        record = self._pool.load(offset)
        if record is None:
            raise ValueError("cannot free the null offset")
        record.destroy()
        self._pool.update(offset, record)
        self._pool.free(offset)

    def __iter__(self) -> Iterator[DLRecord]:
        """Yield the data records from front to back."""
        cursor = self.head().next()
        while cursor.offset != self._tail_offset:
            record = cursor.record()
            yield record
            cursor = self._cursor(record.next)

    def dump(self) -> str:
        """Text listing of every record, head to tail, for debugging."""
        lines = ["Contents of DlinkedList:\n"]
        cursor = self.head()
        while True:
            record = cursor.record()
            key = record.key
            lines.append(
                f"Type:\t{to_hex(int(record.entry.meta.type), 4)}\t"
                f"Offset:\t{to_hex(cursor.offset)}\t"
                f"Prev:\t{to_hex(record.prev)}\t"
                f"Next:\t{to_hex(record.next)}\t"
                f"Key: {to_hex(Collection.extract_id(key))}"
                f"{Collection.extract_user_key(key).decode('utf-8', 'backslashreplace')}\t"
                f"Value: {record.value.decode('utf-8', 'backslashreplace')}\n"
            )
            if cursor.offset == self._tail_offset:
                break
            cursor = self._cursor(record.next)
        return "".join(lines)