"""Result codes reported by engine operations and the matching exception."""

from __future__ import annotations

import enum


class Status(enum.IntEnum):
    """Outcome of an engine operation."""

    Ok = 0
    NotFound = 1
    Expired = 2
    WrongType = 3
    OperationFail = 4
    OutOfRange = 5
    MemoryOverflow = 6
    PmemOverflow = 7
    NotSupported = 8
    PMemMapFileError = 9
    BatchOverflow = 10
    TooManyAccessThreads = 11
    InvalidDataSize = 12
    InvalidArgument = 13
    IOError = 14
    InvalidConfiguration = 15
    Fail = 16
    Abort = 17


class KVDKError(Exception):
    """Raised when an operation ends with a status other than ``Status.Ok``."""

    def __init__(self, status: Status | int, message: str = "") -> None:
        self.status = Status(status)
        self.message = message
        text = f"{self.status.name}: {message}" if message else self.status.name
        super().__init__(text)


def check(status: Status | int, message: str = "") -> None:
    """Raise :class:`KVDKError` unless ``status`` is ``Status.Ok``."""
    status = Status(status)
    if status is not Status.Ok:
        raise KVDKError(status, message)