# kvdk

`kvdk` holds the building blocks of a key-value store. Each part can be used on its own.

| Module | What it holds |
| --- | --- |
| `kvdk.status` | The `Status` result codes, the `KVDKError` exception, and `check(status, message)`, which raises `KVDKError` unless the status is `Status.Ok`. |
| `kvdk.configs` | `Configs`, `SortedCollectionConfigs`, `WriteOptions` and `LogLevel`, plus constants such as `PERSIST_TIME` and `MAX_WRITE_BATCH_SIZE`. |
| `kvdk.comparator` | `ComparatorTable`, a registry of named comparison functions. |
| `kvdk.structures` | `PointerType`, `PointerWithTag` (a 48-bit address with a 16-bit tag), `PendingBatch`, `BackupMark`, `Snapshot` and `to_hex`. |
| `kvdk.collection` | `Collection`, an abstract base for named collections. An internal key is an 8-byte little-endian collection id followed by the user key. |
| `kvdk.records` | `StringRecord` and `DLRecord`, records sealed with a checksum, with `to_bytes` / `from_bytes` and `validate`. Also `RecordType` and its type masks. |
| `kvdk.write_batch` | `WriteBatch`, an ordered list of puts and deletes. |
| `kvdk.allocator` | `SpaceEntry`, the `Allocator` interface and `ChunkBasedAllocator`, which hands out space from per-thread chunks. |
| `kvdk.hash_table` | `HashTable`, buckets of `HashEntry` grouped into locked slots, each slot with a hot-entry cache. |
| `kvdk.dlinked_list` | `RecordPool`, `DListCursor` and `DLinkedList`, a list of `DLRecord`s bounded by head and tail records. |
| `kvdk.generators` | `XorShiftEngine`, `RangeIterator` and `ZipfianDistribution`, for generating workload keys. |

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

### Records

A record is sealed with its checksum when it is built. It survives a round trip through bytes.

```python
from kvdk.records import RecordType, StringRecord

record = StringRecord.construct(
    StringRecord.HEADER_SIZE + 8, 1, RecordType.StringDataRecord, 0, b"key", b"value"
)
copy = StringRecord.from_bytes(record.to_bytes())
assert copy.validate() and copy.value == b"value"
```

### Hash index

`search_for_write` must be called with the key's slot lock held. `acquire_lock` holds that lock and yields the key's hint. When the key is not found, the result's `entry` is the position to fill with `insert`.

```python
from kvdk.hash_table import HashTable
from kvdk.records import RecordType
from kvdk.structures import PointerType

table = HashTable(hash_bucket_num=16, hash_bucket_size=128, num_buckets_per_slot=1)
with table.acquire_lock(b"key") as hint:
    result = table.search_for_write(hint, b"key", RecordType.StringDataRecord)
    table.insert(hint, result.entry, RecordType.StringDataRecord,
                 record, PointerType.StringRecord)

found = table.search_for_read(table.get_hint(b"key"), b"key", RecordType.StringDataRecord)
assert found.found and found.data_entry.meta.k_size == 3
```

`search_for_write` raises `KVDKError` with status `MemoryOverflow` when no new bucket can be allocated.

### Linked record lists

```python
from kvdk.dlinked_list import DLinkedList, RecordPool

pool = RecordPool()
dlist = DLinkedList(pool, 1, b"\0" * 8 + b"list", b"")
dlist.emplace_back(2, b"\0" * 8 + b"a", b"1")
dlist.emplace_front(3, b"\0" * 8 + b"b", b"2")
assert [r.value for r in dlist] == [b"2", b"1"]
```

Unlinking a record with `erase`, `pop_front` or `pop_back` does not free it. `DLinkedList.from_existing` rebuilds a list from its head and tail offsets and repairs broken backward links. `dump` lists every record, and it expects keys that start with an 8-byte collection id.

### Workload generators

```python
from kvdk.generators import RangeIterator, XorShiftEngine, ZipfianDistribution

gen = XorShiftEngine(seed=42)
zipf = ZipfianDistribution(1000)
key = zipf(gen)                      # an integer in [1, 1000]
assert list(RangeIterator(0, 6, 2)) == [0, 2, 4]
```

## What this package does not do

There is no engine front end that ties these parts together. No object offers `set`, `get` or collection operations over a store, and nothing keeps data on disk beyond the process.

No benchmark command is installed either. The generators produce keys, but nothing here runs a workload or reports operations per second.