import logging

import pytest
from hypothesis import given, strategies as st

from wasmweave.imports import ImportKind
from wasmweave.module import Module, RawCustomSection, WasmError
from wasmweave.types import ValType

HEADER = b"\x00asm\x01\x00\x00\x00"


def section(section_id, payload):
    assert len(payload) < 128
    return bytes([section_id, len(payload)]) + payload


def text(value):
    raw = value.encode("utf-8")
    return bytes([len(raw)]) + raw


def custom(name, payload):
    return section(0, text(name) + payload)


def test_empty_module_emits_only_header():
    assert Module().emit_wasm() == HEADER


def test_parse_header_only_records_tool():
    module = Module.from_buffer(HEADER)
    assert len(module.types) == 0
    assert len(module.imports) == 0
    field_name, values = module.producers.fields()[0]
    assert field_name == "processed-by"
    assert values[0][0] == "wasmweave"


@pytest.mark.parametrize(
    "data",
    [b"", b"\x00as", b"\x00asn\x01\x00\x00\x00", b"\x00asm\x02\x00\x00\x00"],
)
def test_bad_header_rejected(data):
    with pytest.raises(WasmError):
        Module.from_buffer(data)


def test_type_section_parsed():
    payload = b"\x02\x60\x01\x7f\x01\x7e\x60\x00\x00"
    module = Module.from_buffer(HEADER + section(1, payload))
    pairs = {(ty.params, ty.results) for ty in module.types}
    assert pairs == {((ValType.I32,), (ValType.I64,)), ((), ())}


def test_duplicate_types_deduplicated():
    payload = b"\x02\x60\x00\x00\x60\x00\x00"
    module = Module.from_buffer(HEADER + section(1, payload))
    assert len(module.types) == 1


def test_types_emitted_in_sorted_order():
    module = Module()
    module.types.add([ValType.I64], [])
    module.types.add([ValType.I32], [])
    parsed = Module.from_buffer(module.emit_wasm())
    assert [ty.params for ty in parsed.types] == [(ValType.I32,), (ValType.I64,)]


def test_entry_types_not_emitted():
    module = Module()
    module.types.add_entry_ty([ValType.I32, ValType.I32])
    assert module.emit_wasm() == HEADER


def test_memory_section_bytes():
    module = Module()
    module.memories.add_local(False, 1, None)
    assert module.emit_wasm() == HEADER + bytes.fromhex("0503010001")


def test_imports_round_trip():
    module = Module()
    memory, memory_import = module.add_import_memory("env", "memory", True, 1, 2)
    table, _ = module.add_import_table("env", "table", 1, None, ValType.FUNCREF)
    assert module.imports.get(memory_import).item == memory
    assert module.tables.get(table).import_id is not None

    parsed = Module.from_buffer(module.emit_wasm())
    summary = [(i.module, i.name, i.kind) for i in parsed.imports]
    assert summary == [
        ("env", "memory", ImportKind.MEMORY),
        ("env", "table", ImportKind.TABLE),
    ]
    (mem,) = list(parsed.memories)
    assert (mem.shared, mem.initial, mem.maximum) == (True, 1, 2)
    assert mem.import_id == parsed.imports.find("env", "memory")
    (tab,) = list(parsed.tables)
    assert (tab.initial, tab.maximum, tab.element_ty) == (1, None, ValType.FUNCREF)


def test_local_tables_and_memories_round_trip():
    module = Module()
    module.tables.add_local(2, 10, ValType.EXTERNREF)
    module.memories.add_local(False, 3, 4)
    parsed = Module.from_buffer(module.emit_wasm())
    (table,) = list(parsed.tables)
    (memory,) = list(parsed.memories)
    assert (table.initial, table.maximum, table.element_ty) == (2, 10, ValType.EXTERNREF)
    assert table.import_id is None
    assert (memory.shared, memory.initial, memory.maximum) == (False, 3, 4)


@pytest.mark.parametrize(
    "payload",
    [
        b"\x01\x04\x01",  # 64-bit memory
        b"\x01\x02\x01",  # shared without maximum
        b"\x01\x00\x81\x80\x04",  # too many pages
        b"\x01\x01\x05\x02",  # maximum below initial
        b"\x01\x08\x01",  # unknown flag
    ],
)
def test_invalid_memories_rejected(payload):
    with pytest.raises(WasmError):
        Module.from_buffer(HEADER + section(5, payload))


@pytest.mark.parametrize(
    "payload",
    [
        b"\x01\x70\x01\x05\x02",  # maximum below initial
        b"\x01\x7f\x00\x01",  # not a reference type
        b"\x01\x70\x02\x01",  # bad flags
    ],
)
def test_invalid_tables_rejected(payload):
    with pytest.raises(WasmError):
        Module.from_buffer(HEADER + section(4, payload))


def test_unsupported_section_rejected():
    with pytest.raises(WasmError, match="function section"):
        Module.from_buffer(HEADER + section(3, b"\x00"))


def test_function_import_rejected():
    payload = b"\x01" + text("env") + text("f") + b"\x00\x00"
    with pytest.raises(WasmError):
        Module.from_buffer(HEADER + section(2, payload))


def test_sections_out_of_order_rejected():
    data = HEADER + section(5, b"\x00") + section(1, b"\x00")
    with pytest.raises(WasmError, match="out of order"):
        Module.from_buffer(data)


def test_section_size_mismatch_rejected():
    with pytest.raises(WasmError):
        Module.from_buffer(HEADER + section(1, b"\x00\x00"))


def test_custom_section_preserved():
    module = Module.from_buffer(HEADER + custom("hello", b"abc"))
    assert module.customs == [RawCustomSection("hello", b"abc")]
    again = Module.from_buffer(module.emit_wasm())
    assert again.customs == [RawCustomSection("hello", b"abc")]


def test_debug_sections_dropped_unless_requested():
    module = Module()
    module.customs.append(RawCustomSection(".debug_info", b"\x01"))
    assert Module.from_buffer(module.emit_wasm()).customs == []
    module.generate_dwarf = True
    parsed = Module.from_buffer(module.emit_wasm())
    assert parsed.customs == [RawCustomSection(".debug_info", b"\x01")]


@given(st.text(alphabet=st.characters(blacklist_categories=("Cs",)), max_size=20))
def test_module_name_round_trip(name):
    module = Module()
    module.name = name
    assert Module.from_buffer(module.emit_wasm()).name == name


def test_skip_name_section():
    module = Module(skip_name_section=True)
    module.name = "m"
    assert Module.from_buffer(module.emit_wasm()).name is None


def test_type_names_from_name_section():
    subsection = b"\x01\x00" + text("t")
    names = bytes([4, len(subsection)]) + subsection
    data = HEADER + section(1, b"\x01\x60\x00\x00") + custom("name", names)
    module = Module.from_buffer(data)
    assert module.types.by_name("t") == module.types.find([], [])


def test_bad_name_index_warns(caplog):
    subsection = b"\x01\x03" + text("t")
    names = bytes([5, len(subsection)]) + subsection
    with caplog.at_level(logging.WARNING):
        module = Module.from_buffer(HEADER + custom("name", names))
    assert len(module.tables) == 0
    assert "in name section" in caplog.text


def test_malformed_producers_warns(caplog):
    with caplog.at_level(logging.WARNING):
        module = Module.from_buffer(HEADER + custom("producers", b"\x05"))
    assert "producers" in caplog.text
    assert [name for name, _ in module.producers.fields()] == ["processed-by"]


def test_producers_round_trip():
    module = Module()
    module.producers.add_language("rust", "1.0")
    parsed = Module.from_buffer(module.emit_wasm())
    fields = dict(parsed.producers.fields())
    assert fields["language"] == [("rust", "1.0")]
    assert "processed-by" in fields


def test_emit_is_stable_after_reparse():
    module = Module()
    module.types.add([ValType.F32], [ValType.F64])
    module.add_import_memory("env", "mem", False, 1, None)
    first = Module.from_buffer(module.emit_wasm()).emit_wasm()
    second = Module.from_buffer(first).emit_wasm()
    assert first == second


def test_skip_producers_section():
    module = Module.from_buffer(HEADER)
    module.skip_producers_section = True
    assert module.emit_wasm() == HEADER


def test_function_import_cannot_be_emitted():
    module = Module()
    ty = module.types.add([], [])
    module.imports.add("env", "f", ImportKind.FUNCTION, ty)
    with pytest.raises(WasmError):
        module.emit_wasm()


def test_file_round_trip(tmp_path):
    module = Module()
    module.memories.add_local(False, 2, 3)
    module.name = "file"
    path = tmp_path / "out.wasm"
    module.emit_wasm_file(path)
    assert path.read_bytes() == module.emit_wasm()
    loaded = Module.from_file(path)
    assert loaded.name == "file"
    assert [(m.initial, m.maximum) for m in loaded.memories] == [(2, 3)]