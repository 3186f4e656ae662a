"""Bump-pointer memory arena built from fixed-size pools."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_POOL_SIZE = 4096


@dataclass(eq=False)
class Block:
    """A region of a pool handed out by an :class:`Arena`."""

    pool: bytearray
    offset: int
    size: int

    @property
    def view(self) -> memoryview:
        """Writable view over the block's bytes."""
        return memoryview(self.pool)[self.offset:self.offset + self.size]

    def __len__(self) -> int:
        return self.size

    def __bytes__(self) -> bytes:
        return bytes(self.pool[self.offset:self.offset + self.size])


@dataclass(eq=False)
class _Pool:
    buffer: bytearray
    used: int = 0

    @property
    def remaining(self) -> int:
        return len(self.buffer) - self.used


class Arena:
    """Allocates blocks sequentially from pools; a full pool is replaced by a new one.

    ``pools`` counts the pools added after the first, ``allocated`` the bytes
    handed out so far.
    """

    def __init__(self, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        if pool_size <= 0:
            raise ValueError("pool size must be positive")
        self.pool_size = pool_size
        self.pools = 0
        self.allocated = 0
        self._pools: list[_Pool] = [_Pool(bytearray(pool_size))]

    @property
    def _current(self) -> _Pool:
        return self._pools[-1]

    @property
    def remaining(self) -> int:
        """Free bytes left in the current pool."""
        return self._current.remaining

    def _grow(self, minimum: int) -> _Pool:
        pool = _Pool(bytearray(max(self.pool_size, minimum)))
        self._pools.append(pool)
        self.pools += 1
        return pool

    def alloc(self, size: int) -> Block:
        """Hand out ``size`` bytes, starting a new pool if the current one is too full."""
        if size < 0:
            raise ValueError("size must not be negative")
        pool = self._current
        if pool.remaining < size:
            pool = self._grow(size)
        block = Block(pool.buffer, pool.used, size)
        pool.used += size
        self.allocated += size
        return block

    def realloc(self, block: Block, size: int) -> Block:
        """Resize the most recent allocation, moving it to a new pool if needed."""
        if size < 0:
            raise ValueError("size must not be negative")
        pool = self._current
        if block.pool is not pool.buffer or block.offset + block.size != pool.used:
            raise ValueError("only the most recent allocation can be resized")

        diff = size - block.size
        if pool.remaining < diff:
            moved = self._grow(size)
            moved.buffer[:block.size] = block.pool[block.offset:block.offset + block.size]
            moved.used = size
            self.allocated += size
            return Block(moved.buffer, 0, size)

        pool.used += diff
        self.allocated += diff
        return Block(pool.buffer, block.offset, size)

    def dealloc(self, size: int) -> None:
        """Give the last ``size`` bytes of the current pool back."""
        if size < 0:
            raise ValueError("size must not be negative")
        pool = self._current
        if size > pool.used:
            raise ValueError("cannot release more than the current pool holds")
        pool.used -= size
        self.allocated -= size