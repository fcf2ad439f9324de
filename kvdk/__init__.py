"""Building blocks of a key-value store: records, allocators, a hash index, linked lists and generators."""

__version__ = "0.1.0"