"""A batch of string writes and deletes applied together."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Union

from kvdk.records import RecordType

BytesLike = Union[str, bytes, bytearray, memoryview]


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


@dataclass(frozen=True)
class BatchKV:
    """One operation in a batch."""

    key: bytes
    value: bytes
    type: RecordType


@dataclass
class WriteBatch:
    """Ordered list of puts and deletes on string keys."""

    kvs: List[BatchKV] = field(default_factory=list)

    def put(self, key: BytesLike, value: BytesLike) -> None:
        self.kvs.append(BatchKV(_as_bytes(key), _as_bytes(value), RecordType.StringDataRecord))

    def delete(self, key: BytesLike) -> None:
        self.kvs.append(BatchKV(_as_bytes(key), b"", RecordType.StringDeleteRecord))

    def clear(self) -> None:
        self.kvs.clear()

    def __len__(self) -> int:
        return len(self.kvs)

    def __iter__(self) -> Iterator[BatchKV]:
        return iter(self.kvs)