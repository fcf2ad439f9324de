"""Small shared structures: pointer kinds, tagged pointers, batch and backup marks."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Iterable, List


class PointerType(enum.IntEnum):
    """What an index entry points at."""

    Invalid = 0
    StringRecord = 1
    DLRecord = 2
    SkiplistNode = 3
    Skiplist = 4
    UnorderedCollection = 5
    UnorderedCollectionElement = 6
    List = 7
    HashEntry = 8
    Empty = 100


class PointerWithTag:
    """A 48-bit address with a 16-bit tag stored in its high bits."""

    POINTER_MASK = (1 << 48) - 1
    TAG_MASK = (1 << 16) - 1

    __slots__ = ("_tagged",)

    def __init__(self, pointer: int = 0, tag: int = 0) -> None:
        if not 0 <= pointer <= self.POINTER_MASK:
            raise ValueError("pointer does not fit in 48 bits")
        self._tagged = pointer | (self._checked_tag(tag) << 48)

    @classmethod
    def _checked_tag(cls, tag: int) -> int:
        tag = int(tag)
        if not 0 <= tag <= cls.TAG_MASK:
            raise ValueError("tag does not fit in 16 bits")
        return tag

    @property
    def raw_pointer(self) -> int:
        """The address without its tag."""
        return self._tagged & self.POINTER_MASK

    @property
    def is_null(self) -> bool:
        """True when the address part is zero."""
        return self.raw_pointer == 0

    @property
    def tag(self) -> int:
        """The 16-bit tag."""
        return self._tagged >> 48

    def clear_tag(self) -> None:
        """Drop the tag, keeping the address."""
        self._tagged &= self.POINTER_MASK

    def set_tag(self, tag: int) -> None:
        """Merge ``tag`` into the current tag bits (bitwise OR)."""
        self._tagged |= self._checked_tag(tag) << 48

    def __int__(self) -> int:
        return self._tagged

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PointerWithTag):
            return self._tagged == other._tagged
        if isinstance(other, int):
            return self.raw_pointer == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._tagged)

    def __repr__(self) -> str:
        return f"PointerWithTag(pointer={self.raw_pointer:#x}, tag={self.tag})"


class BackupStage(enum.IntEnum):
    Init = 0
    Processing = 1
    Finish = 2


@dataclass
class BackupMark:
    """Progress of a backup taken at ``backup_ts``."""

    backup_ts: int
    stage: BackupStage = BackupStage.Init


class BatchStage(enum.IntEnum):
    Finish = 0
    Processing = 1


_BATCH_HEADER = struct.Struct("<iIQ")
_OFFSET = struct.Struct("<Q")


@dataclass
class PendingBatch:
    """Stage of a batch write and the offsets of the records it writes.

    Layout when serialised: stage | number of records | timestamp | offsets.
    """

    stage: BatchStage = BatchStage.Finish
    num_kv: int = 0
    timestamp: int = 0
    record_offsets: List[int] = field(default_factory=list)

    def persist_processing(self, record_offsets: Iterable[int], timestamp: int) -> None:
        """Mark the batch as in progress, recording its record offsets."""
        self.record_offsets = list(record_offsets)
        self.num_kv = len(self.record_offsets)
        self.timestamp = timestamp
        self.stage = BatchStage.Processing

    def persist_finish(self) -> None:
        """Mark the batch as finished."""
        self.stage = BatchStage.Finish

    def unfinished(self) -> bool:
        """True while the batch write is still in progress."""
        return self.stage == BatchStage.Processing

    def to_bytes(self) -> bytes:
        header = _BATCH_HEADER.pack(int(self.stage), self.num_kv, self.timestamp)
        return header + b"".join(_OFFSET.pack(off) for off in self.record_offsets)

    @classmethod
    def from_bytes(cls, data: bytes) -> "PendingBatch":
        if len(data) < _BATCH_HEADER.size:
            raise ValueError("pending batch data is too short")
        stage, num_kv, timestamp = _BATCH_HEADER.unpack_from(data)
        end = _BATCH_HEADER.size + num_kv * _OFFSET.size
        if len(data) < end:
            raise ValueError("pending batch data is missing record offsets")
        offsets = [
            off for (off,) in _OFFSET.iter_unpack(data[_BATCH_HEADER.size : end])
        ]
        return cls(BatchStage(stage), num_kv, timestamp, offsets)


@dataclass(frozen=True)
class Snapshot:
    """An immutable view of the engine at ``timestamp``."""

    timestamp: int


def to_hex(value: int, width: int = 16) -> str:
    """Zero-padded lower-case hex of a non-negative integer."""
    if value < 0:
        raise ValueError("to_hex expects a non-negative value")
    return f"{value:0{width}x}"