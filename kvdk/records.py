"""On-media data records: string records and doubly linked records."""

from __future__ import annotations

import enum
import struct
import time
import zlib
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from kvdk.configs import PERSIST_TIME

BytesLike = Union[str, bytes, bytearray, memoryview]


class RecordType(enum.IntFlag):
    """Kind of a stored record; values are single bits so they combine into masks."""

    Empty = 0
    StringDataRecord = 1 << 0
    StringDeleteRecord = 1 << 1
    SortedDataRecord = 1 << 2
    SortedDeleteRecord = 1 << 3
    SortedHeaderRecord = 1 << 4
    DlistDataRecord = 1 << 5
    DlistHeadRecord = 1 << 6
    DlistTailRecord = 1 << 7
    DlistRecord = 1 << 8
    ListRecord = 1 << 9
    ListElem = 1 << 10
    Padding = 1 << 15


SORTED_RECORD_TYPE = (
    RecordType.SortedDataRecord
    | RecordType.SortedDeleteRecord
    | RecordType.SortedHeaderRecord
)
DL_RECORD_TYPE = (
    SORTED_RECORD_TYPE
    | RecordType.DlistDataRecord
    | RecordType.DlistHeadRecord
    | RecordType.DlistTailRecord
    | RecordType.DlistRecord
    | RecordType.ListElem
    | RecordType.ListRecord
)
DELETE_RECORD_TYPE = RecordType.StringDeleteRecord | RecordType.SortedDeleteRecord
STRING_RECORD_TYPE = RecordType.StringDataRecord | RecordType.StringDeleteRecord
EXPIRABLE_RECORD_TYPE = (
    RecordType.StringDataRecord
    | RecordType.SortedHeaderRecord
    | RecordType.ListRecord
    | RecordType.DlistRecord
)
PRIMARY_RECORD_TYPE = EXPIRABLE_RECORD_TYPE | RecordType.StringDeleteRecord

_HEADER = struct.Struct("<II")
_META = struct.Struct("<QHHI")
_OFFSET = struct.Struct("<Q")
_STRING_TAIL = struct.Struct("<Qq")
_DL_TAIL = struct.Struct("<QQQq")

_MAX_KEY_SIZE = (1 << 16) - 1
_MAX_U32 = (1 << 32) - 1


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def record_checksum(meta_bytes: bytes, data: bytes) -> int:
    """Checksum of a record's metadata part and its key/value data."""
    return (zlib.crc32(bytes(meta_bytes)) + zlib.crc32(bytes(data))) & _MAX_U32


def is_expired(expire_time: int) -> bool:
    """True when ``expire_time`` (unix milliseconds) is not in the future."""
    if expire_time == PERSIST_TIME:
        return False
    return expire_time <= int(time.time() * 1000)


@dataclass
class DataHeader:
    checksum: int = 0
    record_size: int = 0


@dataclass
class DataMeta:
    timestamp: int = 0
    type: RecordType = RecordType.Empty
    k_size: int = 0
    v_size: int = 0

    def to_bytes(self) -> bytes:
        return _META.pack(self.timestamp, int(self.type), self.k_size, self.v_size)


@dataclass
class DataEntry:
    """Header and metadata shared by every record."""

    header: DataHeader
    meta: DataMeta

    def destroy(self) -> None:
        """Mark the record as padding so it is skipped from now on."""
        self.meta.type = RecordType.Padding


def _make_entry(record_size: int, timestamp: int, record_type: RecordType,
                key: bytes, value: bytes) -> DataEntry:
    if len(key) > _MAX_KEY_SIZE:
        raise ValueError("key is too long for a record")
    if len(value) > _MAX_U32:
        raise ValueError("value is too long for a record")
    if not 0 <= record_size <= _MAX_U32:
        raise ValueError("record size must fit in 32 bits")
    return DataEntry(
        DataHeader(0, record_size),
        DataMeta(timestamp, RecordType(record_type), len(key), len(value)),
    )


class _RecordBase:
    HEADER_SIZE: ClassVar[int]
    entry: DataEntry
    key: bytes
    value: bytes

    def _older_offset(self) -> int:
        raise NotImplementedError

    def _checksum(self) -> int:
        meta_bytes = self.entry.meta.to_bytes() + _OFFSET.pack(self._older_offset())
        return record_checksum(meta_bytes, self.key + self.value)

    def _validate_record_size(self) -> bool:
        meta = self.entry.meta
        return meta.k_size + meta.v_size + self.HEADER_SIZE <= self.entry.header.record_size

    def _check_integrity(self, expected_checksum: Optional[int]) -> bool:
        if not self._validate_record_size():
            return False
        expected = self.entry.header.checksum if expected_checksum is None else expected_checksum
        return self._checksum() == expected

    @property
    def timestamp(self) -> int:
        return self.entry.meta.timestamp

    @property
    def record_type(self) -> RecordType:
        return self.entry.meta.type

    def _prefix_bytes(self) -> bytes:
        header = self.entry.header
        return _HEADER.pack(header.checksum, header.record_size) + self.entry.meta.to_bytes()

    @staticmethod
    def _parse_entry(data: bytes, header_size: int):
        if len(data) < header_size:
            raise ValueError("record data is too short")
        checksum, record_size = _HEADER.unpack_from(data, 0)
        timestamp, rtype, k_size, v_size = _META.unpack_from(data, _HEADER.size)
        if len(data) < header_size + k_size + v_size:
            raise ValueError("record data is truncated")
        entry = DataEntry(
            DataHeader(checksum, record_size),
            DataMeta(timestamp, RecordType(rtype), k_size, v_size),
        )
        key = data[header_size:header_size + k_size]
        value = data[header_size + k_size:header_size + k_size + v_size]
        return entry, key, value


_ENTRY_SIZE = _HEADER.size + _META.size


@dataclass
class StringRecord(_RecordBase):
    """A key-value record of the string type."""

    entry: DataEntry
    older_version_record: int
    expired_time: int
    key: bytes
    value: bytes

    HEADER_SIZE: ClassVar[int] = _ENTRY_SIZE + _STRING_TAIL.size

    @staticmethod
    def construct(record_size: int, timestamp: int, record_type: RecordType,
                  older_version_record: int, key: BytesLike, value: BytesLike,
                  expired_time: int = PERSIST_TIME) -> "StringRecord":
        """Build a record and seal it with its checksum."""
        if record_type not in (RecordType.StringDataRecord, RecordType.StringDeleteRecord):
            raise ValueError("string record must be a string data or delete record")
        key_b, value_b = _as_bytes(key), _as_bytes(value)
        entry = _make_entry(record_size, timestamp, record_type, key_b, value_b)
        record = StringRecord(entry, older_version_record, expired_time, key_b, value_b)
        entry.header.checksum = record._checksum()
        return record

    def _older_offset(self) -> int:
        return self.older_version_record

    def validate(self, expected_checksum: Optional[int] = None) -> bool:
        """Check that the record is intact, against its own or a given checksum."""
        return self._check_integrity(expected_checksum)

    def destroy(self) -> None:
        """Mark the record as padding."""
        self.entry.destroy()

    def get_expire_time(self) -> int:
        return self.expired_time

    def has_expired(self) -> bool:
        return is_expired(self.expired_time)

    def to_bytes(self) -> bytes:
        tail = _STRING_TAIL.pack(self.older_version_record, self.expired_time)
        return self._prefix_bytes() + tail + self.key + self.value

    @staticmethod
    def from_bytes(data: BytesLike) -> "StringRecord":
        raw = bytes(data)
        entry, key, value = _RecordBase._parse_entry(raw, StringRecord.HEADER_SIZE)
        older, expired = _STRING_TAIL.unpack_from(raw, _ENTRY_SIZE)
        return StringRecord(entry, older, expired, key, value)


@dataclass
class DLRecord(_RecordBase):
    """A record linked to its neighbours by prev/next offsets."""

    entry: DataEntry
    older_version_offset: int
    prev: int
    next: int
    expired_time: int
    key: bytes
    value: bytes

    HEADER_SIZE: ClassVar[int] = _ENTRY_SIZE + _DL_TAIL.size

    @staticmethod
    def construct(record_size: int, timestamp: int, record_type: RecordType,
                  older_version_record: int, prev: int, next: int,
                  key: BytesLike, value: BytesLike,
                  expired_time: int = PERSIST_TIME) -> "DLRecord":
        """Build a linked record and seal it with its checksum."""
        if not RecordType(record_type) & DL_RECORD_TYPE:
            raise ValueError("record type is not a doubly linked record type")
        key_b, value_b = _as_bytes(key), _as_bytes(value)
        entry = _make_entry(record_size, timestamp, record_type, key_b, value_b)
        record = DLRecord(entry, older_version_record, prev, next, expired_time, key_b, value_b)
        entry.header.checksum = record._checksum()
        return record

    def _older_offset(self) -> int:
        return self.older_version_offset

    def validate(self, expected_checksum: Optional[int] = None) -> bool:
        """Check that the record is intact, against its own or a given checksum."""
        return self._check_integrity(expected_checksum)

    def destroy(self) -> None:
        """Mark the record as padding."""
        self.entry.destroy()

    def get_expire_time(self) -> int:
        if not self.entry.meta.type & EXPIRABLE_RECORD_TYPE:
            raise ValueError("record type has no expire time")
        return self.expired_time

    def has_expired(self) -> bool:
        return is_expired(self.get_expire_time())

    def to_bytes(self) -> bytes:
        tail = _DL_TAIL.pack(self.older_version_offset, self.prev, self.next, self.expired_time)
        return self._prefix_bytes() + tail + self.key + self.value

    @staticmethod
    def from_bytes(data: BytesLike) -> "DLRecord":
        raw = bytes(data)
        entry, key, value = _RecordBase._parse_entry(raw, DLRecord.HEADER_SIZE)
        older, prev, nxt, expired = _DL_TAIL.unpack_from(raw, _ENTRY_SIZE)
        return DLRecord(entry, older, prev, nxt, expired, key, value)