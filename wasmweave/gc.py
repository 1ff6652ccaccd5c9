"""Garbage collection of items in a module that nothing refers to.

The caller names the roots: the tables, memories and types that must be
kept. Everything reachable from them is kept as well, and every other
table, memory, type and import is removed from the module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from wasmweave.arena import Id
from wasmweave.imports import ImportKind

if TYPE_CHECKING:
    from wasmweave.module import Module

logger = logging.getLogger(__name__)


class Roots:
    """The set of root items that a collection must keep.

    The ``push_*`` methods return the roots themselves so calls can be
    chained. Pushing an item twice has no further effect.
    """

    def __init__(self) -> None:
        self._tables: dict[Id, None] = {}
        self._memories: dict[Id, None] = {}
        self._types: dict[Id, None] = {}

    def push_table(self, table: Id) -> "Roots":
        """Add a table to the roots."""
        if table not in self._tables:
            logger.debug("table is used: %r", table)
            self._tables[table] = None
        return self

    def push_memory(self, memory: Id) -> "Roots":
        """Add a memory to the roots."""
        if memory not in self._memories:
            logger.debug("memory is used: %r", memory)
            self._memories[memory] = None
        return self

    def push_type(self, ty: Id) -> "Roots":
        """Add a type to the roots."""
        if ty not in self._types:
            logger.debug("type is used: %r", ty)
            self._types[ty] = None
        return self

    @property
    def tables(self) -> tuple[Id, ...]:
        return tuple(self._tables)

    @property
    def memories(self) -> tuple[Id, ...]:
        return tuple(self._memories)

    @property
    def types(self) -> tuple[Id, ...]:
        return tuple(self._types)


@dataclass
class Used:
    """The items of a module that are in use."""

    tables: set[Id] = field(default_factory=set)
    types: set[Id] = field(default_factory=set)
    memories: set[Id] = field(default_factory=set)
    elements: set[Id] = field(default_factory=set)
    data: set[Id] = field(default_factory=set)

    @classmethod
    def compute(cls, module: "Module", roots: Optional[Roots] = None) -> "Used":
        """Find everything in ``module`` reachable from ``roots``.

        Raises KeyError if a root does not name a live item of the module.
        """
        logger.debug("starting to calculate used set")
        roots = roots if roots is not None else Roots()
        used = cls()

        for table_id in roots.tables:
            table = module.tables.get(table_id)
            used.tables.add(table_id)
            used.elements.update(table.elem_segments)

        for memory_id in roots.memories:
            memory = module.memories.get(memory_id)
            used.memories.add(memory_id)
            used.data.update(memory.data_segments)

        for type_id in roots.types:
            module.types.get(type_id)
            used.types.add(type_id)

        return used

    def uses_import(self, kind: ImportKind, item: Id) -> bool:
        """Whether the item an import provides is in use."""
        if kind is ImportKind.TABLE:
            return item in self.tables
        if kind is ImportKind.MEMORY:
            return item in self.memories
        return False


def _unused(used: set[Id], all_ids: Iterable[Id]) -> list[Id]:
    return [id for id in all_ids if id not in used]


def run(module: "Module", roots: Optional[Roots] = None) -> Used:
    """Remove every item of ``module`` not reachable from ``roots``.

    Returns the set of items that were kept.
    """
    used = Used.compute(module, roots)

    for import_id in [
        imp.id for imp in module.imports if not used.uses_import(imp.kind, imp.item)
    ]:
        module.imports.delete(import_id)
    for table_id in _unused(used.tables, (t.id for t in module.tables)):
        module.tables.delete(table_id)
    for memory_id in _unused(used.memories, (m.id for m in module.memories)):
        module.memories.delete(memory_id)
    for type_id in _unused(used.types, (t.id for t in module.types)):
        module.types.delete(type_id)

    return used