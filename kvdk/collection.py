"""Base class for named key-value collections."""

from __future__ import annotations

import abc
import struct
from typing import Union

BytesLike = Union[str, bytes, bytearray, memoryview]

_ID = struct.Struct("<Q")
ID_SIZE = _ID.size


def _as_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class Collection(abc.ABC):
    """A named group of keys; internal keys are the 8-byte id followed by the user key."""

    def __init__(self, name: str, collection_id: int) -> None:
        if not 0 <= collection_id < 1 << 64:
            raise ValueError("collection id must fit in 64 bits")
        self._name = name
        self._id = collection_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def id(self) -> int:
        return self._id

    @abc.abstractmethod
    def get_expire_time(self) -> int:
        """Expire time in milliseconds."""

    @abc.abstractmethod
    def has_expired(self) -> bool:
        """True once the collection's expire time has passed."""

    @abc.abstractmethod
    def set_expire_time(self, expire_time: int) -> None:
        """Change the expire time."""

    def internal_key(self, key: BytesLike) -> bytes:
        """The stored form of ``key`` inside this collection."""
        return self.encode_id(self._id) + _as_bytes(key)

    @staticmethod
    def encode_id(collection_id: int) -> bytes:
        try:
            return _ID.pack(collection_id)
        except struct.error as exc:
            raise ValueError("collection id must fit in 64 bits") from exc

    @staticmethod
    def decode_id(string_id: BytesLike) -> int:
        data = _as_bytes(string_id)
        if len(data) != ID_SIZE:
            raise ValueError("size of string id does not match collection id size")
        return _ID.unpack(data)[0]

    @staticmethod
    def extract_user_key(internal_key: BytesLike) -> bytes:
        data = _as_bytes(internal_key)
        if len(data) < ID_SIZE:
            raise ValueError("internal key does not have space for a collection id")
        return data[ID_SIZE:]

    @staticmethod
    def extract_id(internal_key: BytesLike) -> int:
        data = _as_bytes(internal_key)
        if len(data) < ID_SIZE:
            raise ValueError("internal key does not have space for a collection id")
        return Collection.decode_id(data[:ID_SIZE])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, id={self._id})"