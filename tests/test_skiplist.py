import logging
import random

import pytest

from kiwikv.skiplist import MAX_LEVEL, Opt, SkipList


def _filled(keys, seed=7):
    sl = SkipList(rng=random.Random(seed))
    for key in keys:
        sl.insert(key, Opt.ADD, b"data-" + key)
    return sl


def test_iteration_is_sorted():
    keys = [f"key-{i:04d}".encode() for i in range(200)]
    shuffled = keys[:]
    random.Random(1).shuffle(shuffled)
    sl = _filled(shuffled)
    assert [node.key for node in sl] == keys
    assert len(sl) == len(keys)


def test_duplicate_insert_keeps_first():
    sl = SkipList(rng=random.Random(0))
    assert sl.insert(b"a", Opt.ADD, b"first") is True
    assert sl.insert(b"a", Opt.DEL, b"second") is False
    node = sl.lookup(b"a")
    assert node.data == b"first"
    assert node.opt is Opt.ADD
    assert len(sl) == 1


def test_lookup_missing_is_none():
    sl = _filled([b"a", b"c"])
    assert sl.lookup(b"b") is None
    assert sl.lookup(b"c").key == b"c"


def test_lookup_prev_returns_ceiling():
    sl = _filled([b"a", b"c", b"e"])
    assert sl.lookup_prev(b"b").key == b"c"
    assert sl.lookup_prev(b"c").key == b"c"
    assert sl.lookup_prev(b"f") is None


def test_first_and_last():
    sl = _filled([b"m", b"b", b"x"])
    assert sl.first().key == b"b"
    assert sl.last().key == b"x"


def test_empty_first_and_last():
    sl = SkipList()
    assert sl.first() is None
    assert sl.last() is None
    assert list(sl) == []


def test_allocated_sums_entry_sizes():
    sl = _filled([b"a", b"bb", b"ccc"])
    assert sl.allocated == sum(len(node.data) for node in sl)


def test_level_stays_below_maximum():
    sl = _filled([str(i).encode() for i in range(500)])
    assert 0 <= sl.level < MAX_LEVEL


def test_same_seed_same_shape():
    keys = [str(i).encode() for i in range(100)]
    first = _filled(keys, seed=3)
    second = _filled(keys, seed=3)
    assert first.level == second.level
    assert [len(n.forward) for n in first] == [len(n.forward) for n in second]


def test_release_frees_at_zero():
    sl = _filled([b"a", b"b"])
    sl.acquire()
    sl.acquire()
    sl.release()
    assert sl.released is False
    assert len(sl) == 2
    sl.release()
    assert sl.released is True
    assert list(sl) == []
    with pytest.raises(RuntimeError):
        sl.insert(b"c", Opt.ADD, b"x")


def test_release_without_reference_warns(caplog):
    sl = _filled([b"a"])
    with caplog.at_level(logging.WARNING):
        sl.release()
    assert sl.refcount == 0
    assert sl.released is False
    assert "refcount" in caplog.text