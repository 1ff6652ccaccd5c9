"""Linear memories of a module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from wasmweave.arena import Id, TombstoneArena
from wasmweave.types import _uleb128

_U32_MAX = 0xFFFF_FFFF


def _check_u32(what: str, value: Optional[int]) -> None:
    if value is not None and not 0 <= value <= _U32_MAX:
        raise ValueError(f"{what} `{value}` does not fit in 32 bits")


@dataclass(eq=False)
class Memory:
    """A memory, either defined locally or imported."""

    id: Id
    shared: bool
    initial: int
    maximum: Optional[int] = None
    import_id: Optional[Id] = None
    data_segments: set[Id] = field(default_factory=set)
    name: Optional[str] = None

    def on_delete(self) -> None:
        self.data_segments = set()

    def encode(self) -> bytes:
        """The binary encoding of this memory's limits."""
        if self.maximum is not None:
            flag = 0x03 if self.shared else 0x01
            return bytes([flag]) + _uleb128(self.initial) + _uleb128(self.maximum)
        return bytes([0x00]) + _uleb128(self.initial)


class ModuleMemories:
    """The set of memories in a module."""

    def __init__(self) -> None:
        self._arena: TombstoneArena[Memory] = TombstoneArena()

    def _add(
        self,
        shared: bool,
        initial: int,
        maximum: Optional[int],
        import_id: Optional[Id],
    ) -> Id:
        _check_u32("initial size", initial)
        _check_u32("maximum size", maximum)
        return self._arena.alloc_with_id(
            lambda id: Memory(id, shared, initial, maximum, import_id)
        )

    def add_import(
        self, shared: bool, initial: int, maximum: Optional[int], import_id: Id
    ) -> Id:
        """Add a memory that is provided by the given import."""
        return self._add(shared, initial, maximum, import_id)

    def add_local(self, shared: bool, initial: int, maximum: Optional[int]) -> Id:
        """Add a memory defined by this module."""
        return self._add(shared, initial, maximum, None)

    def get(self, id: Id) -> Memory:
        """The memory with the given id; KeyError if it does not exist."""
        return self._arena[id]

    def delete(self, id: Id) -> None:
        """Remove a memory; references to it must be removed by the caller."""
        self._arena.delete(id)

    def __iter__(self) -> Iterator[Memory]:
        for _, memory in self._arena.items():
            yield memory

    def __len__(self) -> int:
        return len(self._arena)