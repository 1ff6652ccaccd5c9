import gc
import weakref

import pytest
from hypothesis import given, strategies as st

from wasmweave.arena import Id, TombstoneArena


class _Treat:
    pass


class Doggo:
    def __init__(self, good_boi):
        self.good_boi = good_boi

    def on_delete(self):
        self.good_boi = None


def test_can_delete():
    arena = TombstoneArena()
    treat = _Treat()
    ref = weakref.ref(treat)
    id = arena.alloc(Doggo(treat))
    del treat
    gc.collect()
    assert ref() is not None
    assert arena.contains(id)

    arena.delete(id)
    gc.collect()
    assert ref() is None, "the on_delete should have been called"
    assert not arena.contains(id), "and the arena no longer contains the doggo"


def test_get_and_getitem_after_delete():
    arena = TombstoneArena()
    a = arena.alloc("a")
    b = arena.alloc("b")
    arena.delete(a)
    assert arena.get(a) is None
    assert arena.get(b) == "b"
    assert arena[b] == "b"
    with pytest.raises(KeyError):
        arena[a]


def test_delete_twice_raises():
    arena = TombstoneArena()
    a = arena.alloc(1)
    arena.delete(a)
    with pytest.raises(KeyError):
        arena.delete(a)


def test_alloc_with_id_sees_its_own_id():
    arena = TombstoneArena()
    arena.alloc("first")
    expected = arena.next_id()
    id = arena.alloc_with_id(lambda own: own)
    assert id == expected
    assert arena[id] == id


def test_items_and_iter_skip_dead():
    arena = TombstoneArena()
    ids = [arena.alloc(v) for v in "abcd"]
    arena.delete(ids[1])
    assert list(arena) == [ids[0], ids[2], ids[3]]
    assert [v for _, v in arena.items()] == ["a", "c", "d"]
    assert len(arena) == 3
    assert ids[1] not in arena


def test_foreign_ids_are_not_contained():
    first = TombstoneArena()
    second = TombstoneArena()
    id = first.alloc("x")
    second.alloc("y")
    assert id not in second
    assert second.get(id) is None
    assert Id(99, id.arena) not in first


@given(st.lists(st.booleans(), max_size=30))
def test_len_tracks_deletes(flags):
    arena = TombstoneArena()
    ids = [arena.alloc(i) for i in range(len(flags))]
    for id, dead in zip(ids, flags):
        if dead:
            arena.delete(id)
    assert len(arena) == flags.count(False)
    assert len(list(arena.items())) == len(arena)