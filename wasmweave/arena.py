"""Arena storage whose items can be deleted, leaving a tombstone behind."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

T = TypeVar("T")

_arena_numbers = itertools.count(1)


@dataclass(frozen=True, order=True)
class Id:
    """Identifier of an item allocated in a particular arena."""

    index: int
    arena: int = 0


class TombstoneArena(Generic[T]):
    """An append-only arena with a set of deleted ("dead") ids.

    Iterating over the arena yields the ids of live items, like a dict
    yields its keys. Items may define ``on_delete()``, which is called when
    they are deleted so they can release what they hold.
    """

    def __init__(self) -> None:
        self._arena = next(_arena_numbers)
        self._values: list[T] = []
        self._dead: set[int] = set()

    def _owns(self, id: object) -> bool:
        return (
            isinstance(id, Id)
            and id.arena == self._arena
            and 0 <= id.index < len(self._values)
        )

    def next_id(self) -> Id:
        """Return the id the next allocated item will get."""
        return Id(len(self._values), self._arena)

    def alloc(self, value: T) -> Id:
        """Store ``value`` and return its new id."""
        id = self.next_id()
        self._values.append(value)
        return id

    def alloc_with_id(self, factory: Callable[[Id], T]) -> Id:
        """Build an item from its own future id and store it."""
        return self.alloc(factory(self.next_id()))

    def contains(self, id: object) -> bool:
        """Whether ``id`` names a live item of this arena."""
        return self._owns(id) and id.index not in self._dead  # type: ignore[union-attr]

    def __contains__(self, id: object) -> bool:
        return self.contains(id)

    def delete(self, id: Id) -> None:
        """Mark the item as deleted and let it release its resources."""
        if not self.contains(id):
            raise KeyError(id)
        self._dead.add(id.index)
        on_delete = getattr(self._values[id.index], "on_delete", None)
        if callable(on_delete):
            on_delete()

    def get(self, id: Id) -> Optional[T]:
        """Return the live item for ``id``, or None."""
        if not self.contains(id):
            return None
        return self._values[id.index]

    def __getitem__(self, id: Id) -> T:
        if not self.contains(id):
            raise KeyError(id)
        return self._values[id.index]

    def items(self) -> Iterator[tuple[Id, T]]:
        """Yield ``(id, item)`` pairs of live items in allocation order."""
        for index, value in enumerate(self._values):
            if index not in self._dead:
                yield Id(index, self._arena), value

    def __iter__(self) -> Iterator[Id]:
        for id, _ in self.items():
            yield id

    def __len__(self) -> int:
        return len(self._values) - len(self._dead)

    def __repr__(self) -> str:
        return f"TombstoneArena(len={len(self)})"