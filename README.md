# kiwikv

An embedded key-value store. Writes go to an in-memory skip list, the
memtable, which keeps keys in sorted order and records deletions as
tombstones. When the memtable is full, or when the database is closed, its
entries are written to a new sorted run file (`NNNNNN.run`) in the database
directory. Lookups check the memtable first and then the runs from newest to
oldest. The package also has a benchmark that runs mixed reads and writes from
several threads.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Using the store

```python
from kiwikv.db import DB

with DB("testdb") as db:
    db.add(b"alpha", b"1")
    db.add(b"beta", b"2")

with DB("testdb") as db:
    db.remove(b"beta")
    print(db.get(b"alpha"))   # b"1"
    print(db.get(b"beta"))    # None

    it = db.iterator()
    it.seek(b"a")
    for key, value in it:
        print(key, value)     # b'alpha' b'1'
```

Keys and values may be given as `bytes` or `str`. A `str` is encoded as UTF-8.
`get` returns `bytes`, or `None` when the key is missing or deleted.

Some rules to keep in mind:

- While a key sits in the memtable, the first write to it is the one kept.
  Adding the key again, or removing it, does nothing until the memtable has
  been flushed. After a flush, a newer write or a deletion of the key takes
  precedence over older runs.
- `DB.iterator()` returns a `DBIterator` over a snapshot of the live keys,
  in ascending order, taken when the iterator is created. It starts at the
  first key. `seek(key)` moves it to the first key that is not below `key`.
  `valid()`, `key()`, `value()` and `next()` move through the snapshot one
  entry at a time. `key()`, `value()` and `next()` raise `RuntimeError` once
  the iterator has run off the end. Iterating over it yields `(key, value)`
  pairs from the current position onward.
- Any operation on a closed database raises `RuntimeError`. Calling `close()`
  more than once does no harm.

The memtable limits can be set with `DB(path, max_count=..., max_allocation=...)`:
the number of entries, and the total bytes of encoded entries.

Lower-level building blocks are in separate modules:

- `kiwikv.skiplist`: `SkipList`, `SkipNode` and the `Opt` operation kind
  (`Opt.ADD`, `Opt.DEL`). The skip list is reference counted through
  `acquire()` and `release()`.
- `kiwikv.memtable`: `MemTable`, the entry encoding (`encode_entry`,
  `decode_entry`) and the varint helpers (`varint_length`, `encode_varint32`,
  `decode_varint32`).
- `kiwikv.arena`: `Arena`, a bump allocator that hands out `Block`s from
  fixed-size pools and counts the bytes it has allocated.

## What it does not do

- It has no write-ahead log. Writes still in the memtable are lost if the
  process ends without calling `close()`.
- Runs are never merged or compacted. Every flush adds one more run file, and
  all runs are read fully into memory when the database is opened.
- There is no block cache and no bloom filter. The store is not a server, and
  only one process should open a given directory at a time. Within a process,
  a lock makes a `DB` safe to use from several threads.

## Benchmark

The `kiwi-bench` command, which is also `kiwikv.bench.main`, stores its data
in `testdb` in the current directory.

Mixed workload, given the total number of operations, the write percentage,
the thread count and whether to use random keys (0 or 1):

```
kiwi-bench mix 100000 10 4 1
```

Write or read workload. Add `1` for random keys:

```
kiwi-bench write 10000
kiwi-bench read 10000 1
```

The benchmark prints the key and value sizes (16 and 1000 bytes), the
estimated index and data sizes, the date, and CPU details from `/proc/cpuinfo`
where that file exists. A mixed run then prints its throughput, its average
latencies and a table for each thread. A write or read run prints its time per
operation and its rate. The exit status is 1 if the arguments are invalid.

The same steps can be called from Python: `run_mix` returns a `MixResult`
that holds one `ThreadStats` per thread, and `format_mix_report` renders it.
`write_test` and `read_test` time the single-threaded workloads.
`format_header` and `format_environment` produce the header lines.

## Running the tests

```
pytest
```