"""Key-value store: a memtable in front of sorted runs kept on disk."""

from __future__ import annotations

import bisect
import logging
import os
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from kiwikv.memtable import (
    DEFAULT_MAX_ALLOCATION,
    Entry,
    MemTable,
    decode_entry,
    decode_varint32,
    encode_varint32,
)
from kiwikv.skiplist import DEFAULT_MAX_COUNT, Opt

logger = logging.getLogger(__name__)

RUN_SUFFIX = ".run"


def _as_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


@dataclass
class _Run:
    """An immutable sorted run of entries written by one memtable flush."""

    number: int
    entries: dict[bytes, Entry] = field(default_factory=dict)

    @classmethod
    def load(cls, number: int, path: Path) -> "_Run":
        data = path.read_bytes()
        run = cls(number)
        pos = 0
        while pos < len(data):
            size, pos = decode_varint32(data, pos)
            chunk = data[pos:pos + size]
            if len(chunk) != size:
                raise ValueError(f"truncated record in {path}")
            pos += size
            entry = decode_entry(chunk)
            run.entries.setdefault(entry.key, entry)
        return run

    @staticmethod
    def write(path: Path, entries: Iterable[Entry]) -> None:
        from kiwikv.memtable import encode_entry

        out = bytearray()
        for entry in entries:
            encoded = encode_entry(entry.key, entry.value, entry.opt)
            out += encode_varint32(len(encoded))
            out += encoded
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "wb") as fh:
            fh.write(out)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)


class DB:
    """A database rooted at ``basedir``.

    Writes go to a memtable; when it is full its entries are flushed into a
    new sorted run. Reads consult the memtable first, then the runs from the
    newest to the oldest. A key already buffered in the memtable keeps its
    first value until the next flush.
    """

    def __init__(
        self,
        basedir: str | os.PathLike[str],
        *,
        max_count: int = DEFAULT_MAX_COUNT,
        max_allocation: int = DEFAULT_MAX_ALLOCATION,
        rng: random.Random | None = None,
    ) -> None:
        self.basedir = Path(basedir)
        self.basedir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._runs: list[_Run] = self._load_runs()
        self._memtable = MemTable(max_count, max_allocation, rng)
        self._closed = False

    def _load_runs(self) -> list[_Run]:
        runs = []
        for path in self.basedir.glob(f"*{RUN_SUFFIX}"):
            try:
                number = int(path.stem)
            except ValueError:
                continue
            runs.append(_Run.load(number, path))
        runs.sort(key=lambda run: run.number)
        return runs

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("database is closed")

    def _flush(self) -> None:
        entries = list(self._memtable.entries())
        if not entries:
            return
        number = self._runs[-1].number + 1 if self._runs else 1
        _Run.write(self.basedir / f"{number:06d}{RUN_SUFFIX}", entries)
        run = _Run(number, {entry.key: entry for entry in entries})
        self._runs.append(run)

    def add(self, key: bytes | str, value: bytes | str) -> None:
        """Store ``value`` under ``key``, flushing the memtable first if it is full."""
        key, value = _as_bytes(key), _as_bytes(value)
        with self._lock:
            self._check_open()
            if self._memtable.needs_compaction():
                logger.info(
                    "Starting compaction of the memtable after %d insertions and %d deletions",
                    self._memtable.add_count,
                    self._memtable.del_count,
                )
                self._flush()
                self._memtable.compacted = True
                self._memtable.reset()
            self._memtable.add(key, value)

    def get(self, key: bytes | str) -> bytes | None:
        """Value stored under ``key``, or None if absent or deleted."""
        key = _as_bytes(key)
        with self._lock:
            self._check_open()
            node = self._memtable.list.lookup(key)
            if node is not None:
                entry = decode_entry(node.data)
                return None if entry.opt == Opt.DEL else entry.value
            for run in reversed(self._runs):
                entry = run.entries.get(key)
                if entry is not None:
                    return None if entry.opt == Opt.DEL else entry.value
            return None

    def remove(self, key: bytes | str) -> None:
        """Record a deletion of ``key``."""
        key = _as_bytes(key)
        with self._lock:
            self._check_open()
            self._memtable.remove(key)

    def close(self) -> None:
        """Flush buffered writes and release the memtable."""
        with self._lock:
            if self._closed:
                return
            logger.info("Closing database %d", self._memtable.add_count)
            if self._memtable.list.count > 0:
                self._flush()
            self._memtable.list.release()
            self._closed = True

    def _snapshot(self) -> list[tuple[bytes, bytes]]:
        with self._lock:
            self._check_open()
            merged: dict[bytes, Entry] = {}
            for run in self._runs:
                merged.update(run.entries)
            for entry in self._memtable.entries():
                merged[entry.key] = entry
        return sorted(
            (key, entry.value) for key, entry in merged.items() if entry.opt == Opt.ADD
        )

    def iterator(self) -> "DBIterator":
        """Ordered iterator over a snapshot of the live entries."""
        return DBIterator(self)

    def __enter__(self) -> "DB":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DBIterator:
    """Cursor over the live keys of a database in ascending order.

    It starts at the first key; :meth:`seek` moves it to the first key not
    below a given one.
    """

    def __init__(self, db: DB) -> None:
        self._items = db._snapshot()
        self._keys = [key for key, _ in self._items]
        self._pos = 0

    def seek(self, key: bytes | str) -> None:
        self._pos = bisect.bisect_left(self._keys, _as_bytes(key))

    def valid(self) -> bool:
        return self._pos < len(self._items)

    def _require_valid(self) -> None:
        if not self.valid():
            raise RuntimeError("iterator is not positioned on an entry")

    def next(self) -> None:
        self._require_valid()
        self._pos += 1

    def key(self) -> bytes:
        self._require_valid()
        return self._items[self._pos][0]

    def value(self) -> bytes:
        self._require_valid()
        return self._items[self._pos][1]

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        while self.valid():
            item = self._items[self._pos]
            self._pos += 1
            yield item