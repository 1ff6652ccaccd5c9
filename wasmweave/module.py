"""A whole module: parsing from and emitting to the binary format."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from wasmweave.arena import Id
from wasmweave.imports import ImportKind, ModuleImports
from wasmweave.indices import IndexOutOfBounds, IndicesToIds
from wasmweave.locals import ModuleLocals
from wasmweave.memories import ModuleMemories
from wasmweave.producers import ModuleProducers
from wasmweave.tables import ModuleTables
from wasmweave.types import ModuleTypes, ValType, _uleb128

logger = logging.getLogger(__name__)

_MAGIC = b"\x00asm"
_VERSION = b"\x01\x00\x00\x00"
_U32_MAX = 0xFFFF_FFFF
_MAX_PAGES = 65536
_TOOL_NAME = "wasmweave"
_TOOL_VERSION = "0.1.0"

_CUSTOM, _TYPE, _IMPORT, _TABLE, _MEMORY = 0, 1, 2, 4, 5

_SECTION_NAMES = {
    1: "type",
    2: "import",
    3: "function",
    4: "table",
    5: "memory",
    6: "global",
    7: "export",
    8: "start",
    9: "element",
    10: "code",
    11: "data",
    12: "data count",
    13: "tag",
}
_SECTION_RANK = {1: 1, 2: 2, 3: 3, 4: 4, 5: 5, 13: 6, 6: 7, 7: 8, 8: 9, 9: 10, 12: 11, 10: 12, 11: 13}
_SUPPORTED = {_TYPE, _IMPORT, _TABLE, _MEMORY}

PathLike = Union[str, "os.PathLike[str]"]


class WasmError(ValueError):
    """A binary that is malformed or uses something that is not supported."""


@dataclass
class RawCustomSection:
    """A custom section kept as its name and raw payload."""

    name: str
    data: bytes


class _Reader:
    def __init__(self, data: bytes, what: str = "module") -> None:
        self._data = bytes(data)
        self._pos = 0
        self._what = what

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def byte(self) -> int:
        if self.at_end:
            raise WasmError(f"unexpected end of {self._what}")
        value = self._data[self._pos]
        self._pos += 1
        return value

    def take(self, length: int) -> bytes:
        end = self._pos + length
        if end > len(self._data):
            raise WasmError(f"unexpected end of {self._what}")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def rest(self) -> bytes:
        return self.take(len(self._data) - self._pos)

    def sub(self, length: int, what: str) -> "_Reader":
        return _Reader(self.take(length), what)

    def u32(self) -> int:
        result = 0
        for shift in range(0, 35, 7):
            byte = self.byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                if result > _U32_MAX:
                    raise WasmError(f"integer too large in {self._what}")
                return result
        raise WasmError(f"integer representation too long in {self._what}")

    def string(self) -> str:
        raw = self.take(self.u32())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise WasmError(f"invalid UTF-8 string in {self._what}") from None

    def valtype(self) -> ValType:
        code = self.byte()
        try:
            return ValType.from_byte(code)
        except ValueError:
            raise WasmError(f"invalid value type 0x{code:02x} in {self._what}") from None

    def finish(self) -> None:
        if not self.at_end:
            raise WasmError(f"unexpected trailing bytes in {self._what}")


def _encode_str(text: str) -> bytes:
    raw = text.encode("utf-8")
    return _uleb128(len(raw)) + raw


def _section(section_id: int, payload: bytes) -> bytes:
    return bytes([section_id]) + _uleb128(len(payload)) + payload


def _custom_section(name: str, payload: bytes) -> bytes:
    return _section(_CUSTOM, _encode_str(name) + payload)


def _vec(items: list[bytes]) -> bytes:
    return _uleb128(len(items)) + b"".join(items)


class Module:
    """A module built from scratch or parsed from a binary."""

    def __init__(
        self,
        *,
        skip_name_section: bool = False,
        skip_producers_section: bool = False,
        generate_dwarf: bool = False,
    ) -> None:
        self.imports = ModuleImports()
        self.tables = ModuleTables()
        self.types = ModuleTypes()
        self.locals = ModuleLocals()
        self.memories = ModuleMemories()
        self.producers = ModuleProducers()
        self.customs: list[RawCustomSection] = []
        self.name: Optional[str] = None
        self.skip_name_section = skip_name_section
        self.skip_producers_section = skip_producers_section
        self.generate_dwarf = generate_dwarf

    @classmethod
    def from_file(cls, path: PathLike) -> "Module":
        """Parse the binary module stored at ``path``."""
        with open(path, "rb") as handle:
            return cls.from_buffer(handle.read())

    @classmethod
    def from_buffer(cls, wasm: bytes) -> "Module":
        """Parse an in-memory binary module; WasmError if it is invalid."""
        reader = _Reader(wasm)
        if reader.take(4) != _MAGIC:
            raise WasmError("magic header not detected")
        if reader.take(4) != _VERSION:
            raise WasmError("unknown binary version")

        module = cls()
        indices = IndicesToIds()
        last_rank = 0
        while not reader.at_end:
            section_id = reader.byte()
            if section_id == _CUSTOM:
                body = reader.sub(reader.u32(), "custom section")
                module._parse_custom(body, indices)
                continue
            if section_id not in _SECTION_NAMES:
                raise WasmError(f"unknown section id {section_id}")
            section_name = _SECTION_NAMES[section_id]
            rank = _SECTION_RANK[section_id]
            if rank <= last_rank:
                raise WasmError(f"{section_name} section out of order")
            last_rank = rank
            if section_id not in _SUPPORTED:
                raise WasmError(f"{section_name} section is not supported")
            body = reader.sub(reader.u32(), f"{section_name} section")
            parse = {
                _TYPE: module._parse_types,
                _IMPORT: module._parse_imports,
                _TABLE: module._parse_tables,
                _MEMORY: module._parse_memories,
            }[section_id]
            parse(body, indices)
            body.finish()

        module.producers.add_processed_by(_TOOL_NAME, _TOOL_VERSION)
        logger.debug("parse complete")
        return module

    def _parse_custom(self, body: _Reader, indices: IndicesToIds) -> None:
        name = body.string()
        data = body.rest()
        try:
            if name == "producers":
                try:
                    self.producers = ModuleProducers.decode(data)
                except (ValueError, UnicodeDecodeError) as error:
                    raise WasmError(str(error)) from None
            elif name == "name":
                self._parse_name_section(data, indices)
            else:
                logger.debug("parsing custom section `%s`", name)
                self.customs.append(RawCustomSection(name, data))
        except WasmError as error:
            logger.warning("failed to parse `%s` custom section %s", name, error)

    def _parse_types(self, body: _Reader, indices: IndicesToIds) -> None:
        for _ in range(body.u32()):
            form = body.byte()
            if form != 0x60:
                raise WasmError(f"unsupported type form 0x{form:02x}")
            params = [body.valtype() for _ in range(body.u32())]
            results = [body.valtype() for _ in range(body.u32())]
            indices.push_type(self.types.add(params, results))

    def _parse_imports(self, body: _Reader, indices: IndicesToIds) -> None:
        for _ in range(body.u32()):
            module_name = body.string()
            name = body.string()
            kind = body.byte()
            if kind == ImportKind.TABLE.value:
                element_ty, initial, maximum = self._read_table(body)
                table, _ = self.add_import_table(
                    module_name, name, initial, maximum, element_ty
                )
                indices.push_table(table)
            elif kind == ImportKind.MEMORY.value:
                shared, initial, maximum = self._read_memory(body)
                memory, _ = self.add_import_memory(
                    module_name, name, shared, initial, maximum
                )
                indices.push_memory(memory)
            elif kind == ImportKind.FUNCTION.value:
                raise WasmError("imported functions are not supported")
            elif kind == ImportKind.GLOBAL.value:
                raise WasmError("imported globals are not supported")
            else:
                raise WasmError(f"invalid import kind 0x{kind:02x}")

    def _parse_tables(self, body: _Reader, indices: IndicesToIds) -> None:
        for _ in range(body.u32()):
            element_ty, initial, maximum = self._read_table(body)
            indices.push_table(self.tables.add_local(initial, maximum, element_ty))

    def _parse_memories(self, body: _Reader, indices: IndicesToIds) -> None:
        for _ in range(body.u32()):
            shared, initial, maximum = self._read_memory(body)
            indices.push_memory(self.memories.add_local(shared, initial, maximum))

    @staticmethod
    def _read_table(body: _Reader) -> tuple[ValType, int, Optional[int]]:
        element_ty = body.valtype()
        if element_ty not in (ValType.FUNCREF, ValType.EXTERNREF):
            raise WasmError("table element type must be a reference type")
        flags = body.byte()
        if flags not in (0x00, 0x01):
            raise WasmError("invalid table limits flags")
        initial = body.u32()
        maximum = body.u32() if flags else None
        if maximum is not None and maximum < initial:
            raise WasmError("size minimum must not be greater than maximum")
        return element_ty, initial, maximum

    @staticmethod
    def _read_memory(body: _Reader) -> tuple[bool, int, Optional[int]]:
        flags = body.byte()
        if flags & 0x04:
            raise WasmError("64-bit memories not supported")
        if flags & ~0x03:
            raise WasmError("invalid memory limits flags")
        has_max, shared = bool(flags & 0x01), bool(flags & 0x02)
        if shared and not has_max:
            raise WasmError("shared memory must have maximum size")
        initial = body.u32()
        maximum = body.u32() if has_max else None
        if initial > _MAX_PAGES or (maximum is not None and maximum > _MAX_PAGES):
            raise WasmError(f"memory size must be at most {_MAX_PAGES} pages")
        if maximum is not None and maximum < initial:
            raise WasmError("size minimum must not be greater than maximum")
        return shared, initial, maximum

    def _parse_name_section(self, data: bytes, indices: IndicesToIds) -> None:
        logger.debug("parse name section")
        targets: dict[int, tuple[Callable[[int], Id], Optional[Callable[[Id], object]]]] = {
            1: (indices.get_func, None),
            4: (indices.get_type, self.types.get),
            5: (indices.get_table, self.tables.get),
            6: (indices.get_memory, self.memories.get),
            7: (indices.get_global, None),
            8: (indices.get_element, None),
            9: (indices.get_data, None),
        }
        reader = _Reader(data, "name section")
        while not reader.at_end:
            kind = reader.byte()
            sub = reader.sub(reader.u32(), "name subsection")
            if kind == 0:
                self.name = sub.string()
            elif kind in targets:
                lookup, resolve = targets[kind]
                for _ in range(sub.u32()):
                    index = sub.u32()
                    name = sub.string()
                    try:
                        id = lookup(index)
                    except IndexOutOfBounds as error:
                        logger.warning("in name section: %s", error)
                        continue
                    if resolve is not None:
                        resolve(id).name = name  # type: ignore[attr-defined]
            elif kind == 2:
                logger.warning("locals name subsection ignored")
                sub.rest()
            elif kind == 3:
                logger.warning("labels name subsection ignored")
                sub.rest()
            else:
                logger.warning("unknown name subsection %d", kind)
                sub.rest()
            sub.finish()

    def add_import_memory(
        self,
        module: str,
        name: str,
        shared: bool,
        initial: int,
        maximum: Optional[int],
    ) -> tuple[Id, Id]:
        """Add an imported memory; returns ``(memory id, import id)``."""
        import_id = self.imports.next_id()
        memory = self.memories.add_import(shared, initial, maximum, import_id)
        self.imports.add(module, name, ImportKind.MEMORY, memory)
        return memory, import_id

    def add_import_table(
        self,
        module: str,
        name: str,
        initial: int,
        maximum: Optional[int],
        ty: ValType,
    ) -> tuple[Id, Id]:
        """Add an imported table; returns ``(table id, import id)``."""
        import_id = self.imports.next_id()
        table = self.tables.add_import(initial, maximum, ty, import_id)
        self.imports.add(module, name, ImportKind.TABLE, table)
        return table, import_id

    def _encode_imports(self) -> list[bytes]:
        entries = []
        for imp in self.imports:
            if imp.kind is ImportKind.TABLE:
                desc = self.tables.get(imp.item).encode()
            elif imp.kind is ImportKind.MEMORY:
                desc = self.memories.get(imp.item).encode()
            else:
                raise WasmError(f"cannot emit {imp.kind.name.lower()} imports")
            entries.append(
                _encode_str(imp.module)
                + _encode_str(imp.name)
                + bytes([imp.kind.value])
                + desc
            )
        return entries

    def _sections(self) -> Iterable[bytes]:
        types = [ty.encode() for ty in self.types.emittable()]
        if types:
            yield _section(_TYPE, _vec(types))
        imports = self._encode_imports()
        if imports:
            yield _section(_IMPORT, _vec(imports))
        tables = [t.encode() for t in self.tables if t.import_id is None]
        if tables:
            yield _section(_TABLE, _vec(tables))
        memories = [m.encode() for m in self.memories if m.import_id is None]
        if memories:
            yield _section(_MEMORY, _vec(memories))
        if not self.skip_name_section and self.name is not None:
            subsection = _encode_str(self.name)
            payload = bytes([0]) + _uleb128(len(subsection)) + subsection
            yield _custom_section("name", payload)
        if not self.skip_producers_section and self.producers.fields():
            yield _custom_section("producers", self.producers.encode())
        for custom in self.customs:
            if not self.generate_dwarf and custom.name.startswith(".debug"):
                logger.debug("skipping DWARF custom section %s", custom.name)
                continue
            yield _custom_section(custom.name, bytes(custom.data))

    def emit_wasm(self) -> bytes:
        """Encode this module as an in-memory binary."""
        return _MAGIC + _VERSION + b"".join(self._sections())

    def emit_wasm_file(self, path: PathLike) -> None:
        """Encode this module and write it to ``path``."""
        wasm = self.emit_wasm()
        with open(path, "wb") as handle:
            handle.write(wasm)