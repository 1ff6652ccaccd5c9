"""Locals used by the functions of a module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from wasmweave.arena import Id, TombstoneArena
from wasmweave.types import ValType


@dataclass(eq=False)
class Local:
    """A local variable of some function."""

    id: Id
    ty: ValType
    name: Optional[str] = None


class ModuleLocals:
    """The locals of every function in a module."""

    def __init__(self) -> None:
        self._arena: TombstoneArena[Local] = TombstoneArena()

    def add(self, ty: ValType) -> Id:
        """Create a new local of the given type."""
        return self._arena.alloc_with_id(lambda id: Local(id, ty))

    def get(self, id: Id) -> Local:
        """The local with the given id; KeyError if it does not exist."""
        return self._arena[id]

    def __iter__(self) -> Iterator[Local]:
        for _, local in self._arena.items():
            yield local

    def __len__(self) -> int:
        return len(self._arena)