"""Engine, collection and write configuration, plus engine-wide constants."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from kvdk.comparator import ComparatorTable

NAMESPACE = "kvdk"

# Expire times are in milliseconds; this value marks data that never expires.
PERSIST_TIME = 2**63 - 1
EXPIRED_TIME = 0

MAX_WRITE_BATCH_SIZE = 1 << 20
# fsdax mappings align to 2MB.
PMEM_MAP_SIZE_UNIT = 1 << 21
# One record in every this many is indexed when restoring a large skiplist
# with several threads.
RESTORE_SKIPLIST_STRIDE = 10000
MAX_CACHED_OLD_RECORDS = 10000
LIMIT_FOREGROUND_CLEAN_OLD_RECORDS = 1


class LogLevel(enum.IntEnum):
    """Amount of information the engine logs."""

    ALL = 0
    DEBUG = 1
    INFO = 2
    ERROR = 3
    NONE = 4


@dataclass
class SortedCollectionConfigs:
    """Settings of a newly created sorted collection."""

    comparator_name: str = "default"
    index_with_hashtable: bool = True


@dataclass
class Configs:
    """Settings used when opening an engine instance."""

    max_access_threads: int = 48
    pmem_file_size: int = 256 << 30
    populate_pmem_space: bool = True
    pmem_block_size: int = 64
    pmem_segment_blocks: int = 2 * 1024 * 1024
    hash_bucket_size: int = 128
    hash_bucket_num: int = 1 << 27
    num_buckets_per_slot: int = 1
    background_work_interval: float = 5.0
    report_pmem_usage_interval: float = 1000000.0
    use_devdax_mode: bool = False
    devdax_meta_dir: str = "/mnt/kvdk-pmem-meta"
    log_level: LogLevel = LogLevel.INFO
    opt_large_sorted_collection_recovery: bool = False
    recover_to_checkpoint: bool = False
    comparator: ComparatorTable = field(default_factory=ComparatorTable)


@dataclass
class WriteOptions:
    """Per-write options: time to live in milliseconds and key-existence flag."""

    ttl_time: int = PERSIST_TIME
    key_exist: bool = False

    def is_persistent(self) -> bool:
        """True when the write never expires."""
        return self.ttl_time == PERSIST_TIME