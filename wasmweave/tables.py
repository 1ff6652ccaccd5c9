"""Tables of a module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from wasmweave.arena import Id, TombstoneArena
from wasmweave.types import ValType, _uleb128

_U32_MAX = 0xFFFF_FFFF


def _check_u32(what: str, value: Optional[int]) -> None:
    if value is not None and not 0 <= value <= _U32_MAX:
        raise ValueError(f"{what} `{value}` does not fit in 32 bits")


@dataclass(eq=False)
class Table:
    """A table, either defined locally or imported."""

    id: Id
    initial: int
    maximum: Optional[int]
    element_ty: ValType
    import_id: Optional[Id] = None
    elem_segments: set[Id] = field(default_factory=set)
    name: Optional[str] = None

    def encode(self) -> bytes:
        """The binary encoding of this table's element type and limits."""
        out = bytearray(self.element_ty.encode())
        out.append(1 if self.maximum is not None else 0)
        out += _uleb128(self.initial)
        if self.maximum is not None:
            out += _uleb128(self.maximum)
        return bytes(out)


class ModuleTables:
    """The set of tables in a module."""

    def __init__(self) -> None:
        self._arena: TombstoneArena[Table] = TombstoneArena()

    def _add(
        self,
        initial: int,
        maximum: Optional[int],
        element_ty: ValType,
        import_id: Optional[Id],
    ) -> Id:
        _check_u32("initial size", initial)
        _check_u32("maximum size", maximum)
        return self._arena.alloc_with_id(
            lambda id: Table(id, initial, maximum, element_ty, import_id)
        )

    def add_import(
        self,
        initial: int,
        maximum: Optional[int],
        element_ty: ValType,
        import_id: Id,
    ) -> Id:
        """Add a table that is provided by the given import."""
        return self._add(initial, maximum, element_ty, import_id)

    def add_local(
        self, initial: int, maximum: Optional[int], element_ty: ValType
    ) -> Id:
        """Add a table defined by this module."""
        return self._add(initial, maximum, element_ty, None)

    def get(self, id: Id) -> Table:
        """The table with the given id; KeyError if it does not exist."""
        return self._arena[id]

    def delete(self, id: Id) -> None:
        """Remove a table; references to it must be removed by the caller."""
        self._arena.delete(id)

    def main_function_table(self) -> Optional[Id]:
        """The id of the only funcref table, or None if there is none.

        Raises ValueError if the module has more than one function table.
        """
        found = [table.id for table in self if table.element_ty is ValType.FUNCREF]
        if len(found) > 1:
            raise ValueError("module contains more than one function table")
        return found[0] if found else None

    def __iter__(self) -> Iterator[Table]:
        for _, table in self._arena.items():
            yield table

    def __len__(self) -> int:
        return len(self._arena)