"""In-memory write buffer and the encoding of its entries."""

from __future__ import annotations

import random
from typing import Iterator, NamedTuple

from kiwikv.skiplist import DEFAULT_MAX_COUNT, Opt, SkipList

DEFAULT_MAX_ALLOCATION = 4 * 1024 * 1024
_MAX_VARINT_BYTES = 5
_UINT32_MAX = 0xFFFFFFFF


def _check_uint32(value: int) -> None:
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"value {value} does not fit in 32 bits")


def varint_length(value: int) -> int:
    """Number of bytes the varint encoding of ``value`` takes."""
    _check_uint32(value)
    length = 1
    while value >= 0x80:
        value >>= 7
        length += 1
    return length


def encode_varint32(value: int) -> bytes:
    """Little-endian base-128 encoding of an unsigned 32-bit value."""
    _check_uint32(value)
    out = bytearray()
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_varint32(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a varint at ``offset``; return the value and the offset after it."""
    result = 0
    for shift in range(0, 7 * _MAX_VARINT_BYTES, 7):
        if offset >= len(data):
            raise ValueError("truncated varint")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if result > _UINT32_MAX:
                raise ValueError("varint exceeds 32 bits")
            return result, offset
    raise ValueError("varint longer than 5 bytes")


class Entry(NamedTuple):
    key: bytes
    value: bytes
    opt: Opt


def encode_entry(key: bytes, value: bytes, opt: Opt) -> bytes:
    """Encode key and value; the value length is stored plus one, zero marks a deletion."""
    key = bytes(key)
    value = bytes(value)
    if opt == Opt.DEL:
        if value:
            raise ValueError("a deletion carries no value")
        value_code = encode_varint32(0)
    else:
        value_code = encode_varint32(len(value) + 1)
    return encode_varint32(len(key)) + key + value_code + value


def decode_entry(data: bytes) -> Entry:
    """Split an encoded entry into key, value and operation."""
    data = bytes(data)
    key_len, pos = decode_varint32(data, 0)
    key = data[pos:pos + key_len]
    if len(key) != key_len:
        raise ValueError("truncated key")
    pos += key_len
    value_code, pos = decode_varint32(data, pos)
    if value_code == 0:
        return Entry(key, b"", Opt.DEL)
    value = data[pos:pos + value_code - 1]
    if len(value) != value_code - 1:
        raise ValueError("truncated value")
    return Entry(key, value, Opt.ADD)


class MemTable:
    """Sorted in-memory buffer of writes and deletions."""

    def __init__(
        self,
        max_count: int = DEFAULT_MAX_COUNT,
        max_allocation: int = DEFAULT_MAX_ALLOCATION,
        rng: random.Random | None = None,
    ) -> None:
        self.max_count = max_count
        self.max_allocation = max_allocation
        self._rng = rng
        self.list = self._new_list()
        self.lsn = 0
        self.add_count = 0
        self.del_count = 0
        self.compacted = False

    def _new_list(self) -> SkipList:
        sl = SkipList(self.max_count, self._rng)
        sl.acquire()
        return sl

    def _edit(self, key: bytes, value: bytes, opt: Opt) -> None:
        key = bytes(key)
        self.list.insert(key, opt, encode_entry(key, value, opt))
        if opt == Opt.ADD:
            self.add_count += 1
        else:
            self.del_count += 1

    def add(self, key: bytes, value: bytes) -> None:
        """Record a write; an already buffered key keeps its first entry."""
        self._edit(key, value, Opt.ADD)

    def remove(self, key: bytes) -> None:
        """Record a deletion marker for ``key``."""
        self._edit(key, b"", Opt.DEL)

    def get(self, key: bytes) -> bytes | None:
        """Buffered value of ``key``; None if absent, deleted or empty."""
        node = self.list.lookup(key)
        if node is None:
            return None
        entry = decode_entry(node.data)
        if entry.opt == Opt.DEL or not entry.value:
            return None
        return entry.value

    def needs_compaction(self) -> bool:
        return self.list.count >= self.max_count or self.list.allocated >= self.max_allocation

    def reset(self) -> None:
        """Drop the current list and start an empty one with the next sequence number."""
        if self.list is not None:
            self.list.release()
        self.list = self._new_list()
        self.lsn += 1
        self.add_count = 0
        self.del_count = 0

    def entries(self) -> Iterator[Entry]:
        """Every buffered entry in key order, deletions included."""
        for node in self.list:
            yield decode_entry(node.data)