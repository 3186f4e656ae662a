"""Ordered skip list holding encoded memtable entries."""

from __future__ import annotations

import logging
import random
import threading
from enum import IntEnum
from typing import Iterator

logger = logging.getLogger(__name__)

MAX_LEVEL = 15
DEFAULT_MAX_COUNT = 1 << 16


class Opt(IntEnum):
    """Kind of write an entry records."""

    ADD = 0
    DEL = 1


class SkipNode:
    """A skip list node: the user key, the operation and the encoded entry."""

    __slots__ = ("key", "opt", "data", "forward")

    def __init__(self, key: bytes | None, opt: Opt | None, data: bytes | None, height: int) -> None:
        self.key = key
        self.opt = opt
        self.data = data
        self.forward: list[SkipNode] = [self] * height

    def __repr__(self) -> str:
        return f"SkipNode(key={self.key!r}, opt={self.opt!r})"


class SkipList:
    """Skip list ordered by key; inserting an existing key leaves the first entry.

    The list is reference counted: it is emptied and marked released when the
    last holder calls :meth:`release`.
    """

    def __init__(self, max_count: int = DEFAULT_MAX_COUNT, rng: random.Random | None = None) -> None:
        self.max_count = max_count
        self.count = 0
        self.level = 0
        self.allocated = 0
        self.refcount = 0
        self.released = False
        self._rng = rng if rng is not None else random.Random()
        self._lock = threading.Lock()
        self._hdr = SkipNode(None, None, None, MAX_LEVEL + 1)

    def _check_alive(self) -> None:
        if self.released:
            raise RuntimeError("skip list has been released")

    def _predecessors(self, key: bytes) -> list[SkipNode]:
        hdr = self._hdr
        update = [hdr] * MAX_LEVEL
        x = hdr
        for i in range(self.level, -1, -1):
            while (nxt := x.forward[i]) is not hdr and nxt.key < key:
                x = nxt
            update[i] = x
        return update

    def _ceiling(self, key: bytes) -> SkipNode | None:
        self._check_alive()
        node = self._predecessors(bytes(key))[0].forward[0]
        return None if node is self._hdr else node

    def _random_level(self) -> int:
        level = 0
        while self._rng.random() < 0.5 and level < MAX_LEVEL - 1:
            level += 1
        return level

    def insert(self, key: bytes, opt: Opt, data: bytes) -> bool:
        """Insert an entry; return False if the key is already present."""
        self._check_alive()
        key = bytes(key)
        update = self._predecessors(key)
        candidate = update[0].forward[0]
        if candidate is not self._hdr and candidate.key == key:
            return False

        self.count += 1
        new_level = self._random_level()
        if new_level > self.level:
            self.level = new_level

        node = SkipNode(key, Opt(opt), bytes(data), new_level + 1)
        self.allocated += len(node.data)
        for i in range(new_level + 1):
            node.forward[i] = update[i].forward[i]
            update[i].forward[i] = node
        return True

    def lookup(self, key: bytes) -> SkipNode | None:
        """Node holding exactly ``key``, or None."""
        node = self._ceiling(key)
        if node is not None and node.key == bytes(key):
            return node
        return None

    def lookup_prev(self, key: bytes) -> SkipNode | None:
        """First node whose key is not below ``key``, or None past the end."""
        return self._ceiling(key)

    def first(self) -> SkipNode | None:
        node = self._hdr.forward[0]
        return None if node is self._hdr else node

    def last(self) -> SkipNode | None:
        hdr = self._hdr
        x = hdr
        for i in range(self.level, -1, -1):
            while x.forward[i] is not hdr:
                x = x.forward[i]
        return None if x is hdr else x

    def acquire(self) -> None:
        with self._lock:
            self.refcount += 1

    def release(self) -> None:
        """Drop one reference; the list is emptied when none remain."""
        with self._lock:
            if self.refcount <= 0:
                logger.warning("Tried to release skiplist with refcount=%d", self.refcount)
                return
            self.refcount -= 1
            if self.refcount == 0:
                logger.debug("SkipList refcount is at 0. Freeing up the structure")
                self._hdr.forward = [self._hdr] * (MAX_LEVEL + 1)
                self.count = 0
                self.level = 0
                self.allocated = 0
                self.released = True

    def __iter__(self) -> Iterator[SkipNode]:
        hdr = self._hdr
        node = hdr.forward[0]
        while node is not hdr:
            yield node
            node = node.forward[0]

    def __len__(self) -> int:
        return self.count