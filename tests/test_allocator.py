import threading

import pytest

from kvdk.allocator import Allocator, ChunkBasedAllocator, SpaceEntry
from kvdk.status import KVDKError, Status


def test_space_entry_default_is_empty():
    assert SpaceEntry().size == 0


def test_allocations_are_contiguous_within_chunk():
    alloc = ChunkBasedAllocator(1, chunk_size=1024)
    a = alloc.allocate(100)
    b = alloc.allocate(200)
    assert a.size == 100 and b.size == 200
    assert b.offset == a.offset + a.size
    assert a.offset != 0


def test_new_chunk_when_exhausted():
    alloc = ChunkBasedAllocator(1, chunk_size=256)
    a = alloc.allocate(200)
    b = alloc.allocate(100)
    assert b.size == 100
    assert b.offset >= a.offset + 256 or b.offset + b.size <= a.offset


def test_large_allocation_gets_own_region():
    alloc = ChunkBasedAllocator(1, chunk_size=128)
    big = alloc.allocate(1000)
    assert big.size == 1000
    view = alloc.view(big.offset, big.size)
    assert len(view) == 1000


def test_view_writes_are_kept():
    alloc = ChunkBasedAllocator(1, chunk_size=512)
    a = alloc.allocate(16)
    b = alloc.allocate(16)
    alloc.view(a.offset, 4)[:] = b"abcd"
    alloc.view(b.offset, 4)[:] = b"wxyz"
    assert bytes(alloc.view(a.offset, 4)) == b"abcd"
    assert bytes(alloc.view(b.offset, 4)) == b"wxyz"


def test_view_outside_space_raises():
    alloc = ChunkBasedAllocator(1, chunk_size=64)
    entry = alloc.allocate(32)
    with pytest.raises(ValueError):
        alloc.view(0, 8)
    with pytest.raises(ValueError):
        alloc.view(entry.offset, 128)


def test_free_does_not_reuse_space():
    alloc = ChunkBasedAllocator(1, chunk_size=1024)
    a = alloc.allocate(64)
    alloc.free(a)
    b = alloc.allocate(64)
    assert b.offset == a.offset + 64


def test_threads_get_separate_chunks():
    alloc = ChunkBasedAllocator(2, chunk_size=1024)
    results = []

    def work():
        results.append(alloc.allocate(10))

    t = threading.Thread(target=work)
    t.start()
    t.join()
    main = alloc.allocate(10)
    other = results[0]
    assert abs(main.offset - other.offset) >= 1024


def test_too_many_threads():
    alloc = ChunkBasedAllocator(1, chunk_size=64)
    first = alloc.allocate(8)
    outcomes = []

    def work():
        try:
            outcomes.append(alloc.allocate(8))
        except KVDKError as exc:
            outcomes.append(exc.status)

    t = threading.Thread(target=work)
    t.start()
    t.join()
    assert outcomes == [Status.TooManyAccessThreads]
    second = alloc.allocate(8)
    assert second.size == 8
    assert second.offset == first.offset + 8


def test_invalid_arguments():
    with pytest.raises(ValueError):
        ChunkBasedAllocator(0)
    alloc = ChunkBasedAllocator(1)
    with pytest.raises(ValueError):
        alloc.allocate(-1)


def test_allocator_is_abstract():
    with pytest.raises(TypeError):
        Allocator()