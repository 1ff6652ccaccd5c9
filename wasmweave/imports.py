"""The imports of a module."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional

from wasmweave.arena import Id, TombstoneArena


class ImportKind(enum.Enum):
    """The kind of item an import brings in; the value is its binary tag."""

    FUNCTION = 0x00
    TABLE = 0x01
    MEMORY = 0x02
    GLOBAL = 0x03


@dataclass(eq=False)
class Import:
    """A named item imported into the module."""

    id: Id
    module: str
    name: str
    kind: ImportKind
    item: Id

    def on_delete(self) -> None:
        self.module = ""
        self.name = ""


class ModuleImports:
    """The set of imports in a module."""

    def __init__(self) -> None:
        self._arena: TombstoneArena[Import] = TombstoneArena()

    def get(self, id: Id) -> Import:
        """The import with the given id; KeyError if it does not exist."""
        return self._arena[id]

    def delete(self, id: Id) -> None:
        """Remove an import; references to it must be removed by the caller."""
        self._arena.delete(id)

    def next_id(self) -> Id:
        """The id the next added import will get."""
        return self._arena.next_id()

    def add(self, module: str, name: str, kind: ImportKind, item: Id) -> Id:
        """Add an import of ``item`` from ``module``.``name``."""
        kind = ImportKind(kind)
        return self._arena.alloc_with_id(
            lambda id: Import(id, module, name, kind, item)
        )

    def find(self, module: str, name: str) -> Optional[Id]:
        """The id of the import with this module and name, if any."""
        return next(
            (
                id
                for id, imp in self._arena.items()
                if imp.name == name and imp.module == module
            ),
            None,
        )

    def __iter__(self) -> Iterator[Import]:
        for _, imp in self._arena.items():
            yield imp

    def __len__(self) -> int:
        return len(self._arena)