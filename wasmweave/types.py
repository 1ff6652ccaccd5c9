"""Value types, function types and a module's de-duplicated type set."""

from __future__ import annotations

import enum
import functools
from typing import Iterable, Iterator, Optional

from wasmweave.arena import Id, TombstoneArena


def _uleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class ValType(enum.Enum):
    """A value type."""

    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    V128 = "v128"
    EXTERNREF = "externref"
    FUNCREF = "funcref"

    def __str__(self) -> str:
        return self.value

    def __lt__(self, other: "ValType") -> bool:
        if not isinstance(other, ValType):
            return NotImplemented
        return _ORDER[self] < _ORDER[other]

    def __le__(self, other: "ValType") -> bool:
        if not isinstance(other, ValType):
            return NotImplemented
        return _ORDER[self] <= _ORDER[other]

    def __gt__(self, other: "ValType") -> bool:
        if not isinstance(other, ValType):
            return NotImplemented
        return _ORDER[self] > _ORDER[other]

    def __ge__(self, other: "ValType") -> bool:
        if not isinstance(other, ValType):
            return NotImplemented
        return _ORDER[self] >= _ORDER[other]

    @classmethod
    def from_byte(cls, byte: int) -> "ValType":
        """Decode a value type from its binary code."""
        try:
            return _BY_CODE[byte]
        except KeyError:
            raise ValueError("not a value type") from None

    def encode(self) -> bytes:
        """The binary encoding of this value type."""
        return bytes([_CODES[self]])


_ORDER = {ty: position for position, ty in enumerate(ValType)}
_CODES = {
    ValType.I32: 0x7F,
    ValType.I64: 0x7E,
    ValType.F32: 0x7D,
    ValType.F64: 0x7C,
    ValType.V128: 0x7B,
    ValType.FUNCREF: 0x70,
    ValType.EXTERNREF: 0x6F,
}
_BY_CODE = {code: ty for ty, code in _CODES.items()}


@functools.total_ordering
class FuncType:
    """A function type.

    Equality and hashing ignore the id and the name; ordering compares
    parameters, then results.
    """

    def __init__(
        self,
        id: Id,
        params: Iterable[ValType],
        results: Iterable[ValType],
        is_for_function_entry: bool = False,
        name: Optional[str] = None,
    ) -> None:
        self.id = id
        self.params: tuple[ValType, ...] = tuple(params)
        self.results: tuple[ValType, ...] = tuple(results)
        self.is_for_function_entry = is_for_function_entry
        self.name = name

    def _key(self) -> tuple:
        return (self.params, self.results, self.is_for_function_entry)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FuncType):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __lt__(self, other: "FuncType") -> bool:
        if not isinstance(other, FuncType):
            return NotImplemented
        return (self.params, self.results) < (other.params, other.results)

    def __repr__(self) -> str:
        params = ", ".join(map(str, self.params))
        results = ", ".join(map(str, self.results))
        return f"FuncType(({params}) -> ({results}))"

    def on_delete(self) -> None:
        self.params = ()
        self.results = ()

    def encode(self) -> bytes:
        """The binary encoding of this type for the type section."""
        if self.is_for_function_entry:
            raise ValueError("function entry types are internal and cannot be encoded")
        out = bytearray([0x60])
        for values in (self.params, self.results):
            out += _uleb128(len(values))
            for ty in values:
                out += ty.encode()
        return bytes(out)


class ModuleTypes:
    """The set of de-duplicated function types within a module."""

    def __init__(self) -> None:
        self._arena: TombstoneArena[FuncType] = TombstoneArena()
        self._by_key: dict[tuple, Id] = {}

    def _insert(
        self, params: Iterable[ValType], results: Iterable[ValType], entry: bool
    ) -> Id:
        params, results = tuple(params), tuple(results)
        key = (params, results, entry)
        existing = self._by_key.get(key)
        if existing is not None:
            return existing
        id = self._arena.alloc_with_id(lambda own: FuncType(own, params, results, entry))
        self._by_key[key] = id
        return id

    def get(self, id: Id) -> FuncType:
        """The type with the given id."""
        return self._arena[id]

    def params_results(self, id: Id) -> tuple[tuple[ValType, ...], tuple[ValType, ...]]:
        ty = self.get(id)
        return ty.params, ty.results

    def params(self, id: Id) -> tuple[ValType, ...]:
        return self.get(id).params

    def results(self, id: Id) -> tuple[ValType, ...]:
        return self.get(id).results

    def by_name(self, name: str) -> Optional[Id]:
        """The id of the first type with this name, if any."""
        return next((id for id, ty in self._arena.items() if ty.name == name), None)

    def delete(self, id: Id) -> None:
        """Remove a type; references to it must be removed by the caller."""
        ty = self.get(id)
        self._by_key.pop(ty._key(), None)
        self._arena.delete(id)

    def add(self, params: Iterable[ValType], results: Iterable[ValType]) -> Id:
        """Add a type, or return the id of an equal existing one."""
        return self._insert(params, results, False)

    def add_entry_ty(self, results: Iterable[ValType]) -> Id:
        """Add an internal type for a multi-value function entry block."""
        return self._insert((), results, True)

    def find(self, params: Iterable[ValType], results: Iterable[ValType]) -> Optional[Id]:
        """The id of the existing type with these params and results."""
        params, results = tuple(params), tuple(results)
        return next(
            (
                id
                for id, ty in self._arena.items()
                if not ty.is_for_function_entry
                and ty.params == params
                and ty.results == results
            ),
            None,
        )

    def find_for_function_entry(self, results: Iterable[ValType]) -> Optional[Id]:
        results = tuple(results)
        return next(
            (
                id
                for id, ty in self._arena.items()
                if ty.is_for_function_entry and not ty.params and ty.results == results
            ),
            None,
        )

    def emittable(self) -> list[FuncType]:
        """Types that belong in the type section, in deterministic order."""
        return sorted(ty for ty in self if not ty.is_for_function_entry)

    def __iter__(self) -> Iterator[FuncType]:
        for _, ty in self._arena.items():
            yield ty

    def __len__(self) -> int:
        return len(self._arena)