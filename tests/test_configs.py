from kvdk.comparator import ComparatorTable
from kvdk.configs import (
    EXPIRED_TIME,
    PERSIST_TIME,
    Configs,
    LogLevel,
    SortedCollectionConfigs,
    WriteOptions,
)


def test_persist_time_is_int64_max():
    options = WriteOptions()
    assert options.ttl_time == 2**63 - 1
    assert options.ttl_time == PERSIST_TIME
    assert WriteOptions(ttl_time=EXPIRED_TIME).ttl_time == 0


def test_configs_defaults():
    configs = Configs()
    assert configs.max_access_threads == 48
    assert configs.pmem_file_size == 256 << 30
    assert configs.pmem_block_size == 64
    assert configs.pmem_segment_blocks == 2 * 1024 * 1024
    assert configs.hash_bucket_size == 128
    assert configs.hash_bucket_num == 1 << 27
    assert configs.num_buckets_per_slot == 1
    assert configs.populate_pmem_space is True
    assert configs.use_devdax_mode is False
    assert configs.devdax_meta_dir == "/mnt/kvdk-pmem-meta"
    assert configs.log_level is LogLevel.INFO
    assert configs.recover_to_checkpoint is False
    assert configs.opt_large_sorted_collection_recovery is False


def test_configs_have_independent_comparator_tables():
    first = Configs()
    second = Configs()
    first.comparator.register_comparator("cmp", lambda a, b: 0)
    assert "cmp" in first.comparator
    assert "cmp" not in second.comparator
    assert isinstance(second.comparator, ComparatorTable) and len(second.comparator) == 0


def test_configs_override():
    configs = Configs(max_access_threads=16, populate_pmem_space=False)
    assert configs.max_access_threads == 16
    assert configs.populate_pmem_space is False


def test_sorted_collection_defaults():
    s_configs = SortedCollectionConfigs()
    assert s_configs.comparator_name == "default"
    assert s_configs.index_with_hashtable is True


def test_write_options_default_is_persistent():
    options = WriteOptions()
    assert options.ttl_time == PERSIST_TIME
    assert options.key_exist is False
    assert options.is_persistent() is True


def test_write_options_with_ttl_is_not_persistent():
    options = WriteOptions(ttl_time=1000, key_exist=True)
    assert options.is_persistent() is False
    assert options.key_exist is True


def test_log_levels_are_ordered():
    levels = [LogLevel(code) for code in range(5)]
    assert levels == [LogLevel.ALL, LogLevel.DEBUG, LogLevel.INFO, LogLevel.ERROR, LogLevel.NONE]
    assert levels == sorted(levels)
    assert Configs(log_level=LogLevel.ERROR).log_level > Configs().log_level