from types import SimpleNamespace

import pytest

from kvdk.hash_table import (
    HashEntry,
    HashEntryStatus,
    HashTable,
    hash_key,
)
from kvdk.records import (
    DLRecord,
    RecordType,
    STRING_RECORD_TYPE,
    SORTED_RECORD_TYPE,
    StringRecord,
)
from kvdk.status import Status
from kvdk.structures import PointerType


def _put(table, key, ts=1):
    hint = table.get_hint(key)
    res = table.search_for_write(hint, key, STRING_RECORD_TYPE)
    rec = StringRecord.construct(
        1024, ts, RecordType.StringDataRecord, 0, key, b"v-" + key
    )
    table.insert(hint, res.entry, RecordType.StringDataRecord, rec, PointerType.StringRecord)
    return res, rec


def _read(table, key, mask=STRING_RECORD_TYPE):
    return table.search_for_read(table.get_hint(key), key, mask)


def test_hash_key_is_stable_64_bit():
    h = hash_key(b"alpha")
    assert h == hash_key("alpha")
    assert 0 <= h < 2**64
    assert len({hash_key(k) for k in (b"a", b"b", b"c", b"d")}) == 4


def test_get_hint_fields():
    table = HashTable(8, 64, 2, 2)
    hint = table.get_hint(b"key")
    assert hint.key_hash_value == hash_key(b"key")
    assert hint.bucket == hint.key_hash_value & 7
    assert hint.slot == hint.bucket // 2
    assert hint.key_prefix == hint.key_hash_value >> 32


def test_read_missing_key():
    table = HashTable(4, 64, 1, 2)
    res = _read(table, b"nothing")
    assert res.status == Status.NotFound
    assert res.entry is None
    assert not res.found


def test_insert_then_read():
    table = HashTable(4, 64, 1, 2)
    res, rec = _put(table, b"k1")
    assert res.status == Status.NotFound
    found = _read(table, b"k1")
    assert found.found
    assert found.entry is res.entry
    assert found.snapshot.index is rec
    assert found.data_entry == rec.entry
    assert found.data_entry is not rec.entry


def test_write_existing_key_finds_same_entry():
    table = HashTable(4, 64, 1, 2)
    first, _ = _put(table, b"k1")
    second, _ = _put(table, b"k1", ts=2)
    assert second.status == Status.Ok
    assert second.entry is first.entry
    assert _read(table, b"k1").snapshot.index.timestamp == 2


def test_type_mask_mismatch():
    table = HashTable(4, 64, 1, 2)
    _put(table, b"k1")
    assert _read(table, b"k1", SORTED_RECORD_TYPE).status == Status.NotFound


def test_erase_makes_key_unreachable():
    table = HashTable(4, 64, 1, 2)
    res, _ = _put(table, b"k1")
    table.erase(res.entry)
    assert res.entry.is_empty()
    assert _read(table, b"k1").status == Status.NotFound


def test_update_entry_status():
    table = HashTable(4, 64, 1, 2)
    res, _ = _put(table, b"k1")
    assert not res.entry.is_ttl_status()
    table.update_entry_status(res.entry, HashEntryStatus.TTL)
    assert res.entry.is_ttl_status()
    table.update_entry_status(res.entry, HashEntryStatus.Expired)
    assert res.entry.is_expired_status()
    assert _read(table, b"k1").found


def test_many_keys_in_one_bucket_overflow():
    table = HashTable(1, 64, 1, 2)
    assert table.entries_per_bucket == 3
    keys = [b"key%d" % i for i in range(7)]
    for k in keys:
        _put(table, k)
    assert table.entry_count(0) == len(keys)
    for k in keys:
        res = _read(table, k)
        assert res.found
        assert res.snapshot.index.key == k


def test_full_bucket_reuses_erased_entry():
    table = HashTable(1, 64, 1, 2)
    entries = [_put(table, k)[0].entry for k in (b"a", b"b", b"c")]
    table.erase(entries[1])
    res = table.search_for_write(table.get_hint(b"d"), b"d", STRING_RECORD_TYPE)
    assert res.status == Status.NotFound
    assert res.entry is entries[1]
    assert table.entry_count(0) == 3


def test_partial_bucket_does_not_reuse_erased_entry():
    table = HashTable(1, 64, 1, 2)
    first = _put(table, b"a")[0].entry
    _put(table, b"b")
    table.erase(first)
    res = table.search_for_write(table.get_hint(b"c"), b"c", STRING_RECORD_TYPE)
    assert res.entry is not first
    assert res.entry.is_empty()
    assert table.entry_count(0) == 3


def test_named_collection_index():
    table = HashTable(4, 64, 1, 2)
    coll = SimpleNamespace(name="coll")
    hint = table.get_hint("coll")
    res = table.search_for_write(hint, "coll", RecordType.DlistRecord)
    table.insert(hint, res.entry, RecordType.DlistRecord, coll, PointerType.UnorderedCollection)
    found = _read(table, b"coll", RecordType.DlistRecord)
    assert found.snapshot.index is coll
    assert found.data_entry is None


def test_skiplist_index_uses_header_record():
    table = HashTable(4, 64, 1, 2)
    record = DLRecord.construct(
        1024, 5, RecordType.SortedHeaderRecord, 0, 0, 0, b"sk", b""
    )
    skiplist = SimpleNamespace(name="sk", header=SimpleNamespace(record=record))
    hint = table.get_hint("sk")
    res = table.search_for_write(hint, "sk", SORTED_RECORD_TYPE)
    table.insert(hint, res.entry, RecordType.SortedHeaderRecord, skiplist, PointerType.Skiplist)
    found = _read(table, "sk", SORTED_RECORD_TYPE)
    assert found.data_entry == record.entry


def test_match_requires_prefix():
    record = StringRecord.construct(1024, 1, RecordType.StringDataRecord, 0, b"k", b"v")
    entry = HashEntry(7, RecordType.StringDataRecord, record, PointerType.StringRecord)
    assert entry.match(b"k", 7, STRING_RECORD_TYPE)
    assert not entry.match(b"k", 8, STRING_RECORD_TYPE)
    assert not entry.match(b"x", 7, STRING_RECORD_TYPE)


def test_acquire_lock_holds_slot_lock():
    table = HashTable(4, 64, 1, 2)
    with table.acquire_lock(b"k") as hint:
        assert hint.lock.locked()
        assert hint == table.get_hint(b"k")
    assert not hint.lock.locked()


def test_iter_slots_covers_all_entries():
    table = HashTable(4, 64, 2, 2)
    keys = [b"x%d" % i for i in range(10)]
    for k in keys:
        _put(table, k)
    slots = list(table.iter_slots())
    assert [sid for sid, _ in slots] == list(range(table.num_slots))
    assert sum(len(entries) for _, entries in slots) == len(keys)
    for sid, entries in slots:
        for entry in entries:
            assert table.get_hint(entry.index.key).slot == sid


@pytest.mark.parametrize(
    "args",
    [(3, 64, 1, 2), (4, 16, 1, 2), (4, 64, 0, 2), (4, 64, 3, 2)],
)
def test_invalid_configuration(args):
    with pytest.raises(ValueError):
        HashTable(*args)