"""Registry of named key comparison functions."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Union

Comparator = Callable[[bytes, bytes], int]
NameLike = Union[str, bytes, bytearray, memoryview]


def _name_key(name: NameLike) -> bytes:
    if isinstance(name, str):
        return name.encode("utf-8")
    return bytes(name)


class ComparatorTable:
    """Maps comparator names to comparison functions."""

    def __init__(self) -> None:
        self._table: Dict[bytes, Comparator] = {}

    def register_comparator(self, name: NameLike, comp_func: Comparator) -> bool:
        """Register ``comp_func`` under ``name``; return False if the name is taken."""
        key = _name_key(name)
        if key in self._table:
            return False
        self._table[key] = comp_func
        return True

    def get_comparator(self, name: NameLike) -> Optional[Comparator]:
        """Return the comparator registered as ``name``, or None."""
        return self._table.get(_name_key(name))

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, bytes, bytearray, memoryview)):
            return False
        return _name_key(name) in self._table

    def __len__(self) -> int:
        return len(self._table)