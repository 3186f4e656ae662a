"""Embedded key-value store: skip-list memtable, sorted on-disk runs and a benchmark tool."""

__version__ = "0.1.0"
__all__ = ["arena", "skiplist", "memtable", "db", "bench"]