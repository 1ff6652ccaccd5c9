# wasmweave

wasmweave reads a WebAssembly binary into an editable `Module`. You can
inspect and change its function types, imports, tables, memories and
`producers` metadata, then write it back out as a `.wasm` binary. A
garbage-collection pass removes tables, memories, types and imports that
are not reachable from the roots you name.

It is pure Python and has no runtime dependencies.

## Installation

```
pip install wasmweave
```

## Reading and writing modules

```python
from wasmweave.module import Module

module = Module.from_file("input.wasm")

for memory in module.memories:
    print(memory.initial, memory.maximum, memory.shared)

module.emit_wasm_file("output.wasm")
```

To work with bytes directly, use `Module.from_buffer(data)` and
`module.emit_wasm()`. Input that is malformed or not supported raises
`wasmweave.module.WasmError`, which is a `ValueError`.

When a binary is read:

- type, import, table and memory sections are parsed. Imports may be
  tables or memories.
- a `producers` custom section is decoded into `module.producers`, and
  wasmweave adds itself under `processed-by`.
- from a `name` custom section, the module name and the names of types,
  tables and memories are kept. Other name subsections are ignored with a
  logged warning.
- every other custom section is kept as a `RawCustomSection` in
  `module.customs`.

A broken `producers` or `name` section is logged as a warning, and
parsing continues.

`emit_wasm` writes these sections in order: types, imports, locally
defined tables and memories, a `name` section holding the module name, the
`producers` section, and the kept custom sections. `Module()` takes three
keyword options:

- `skip_name_section` leaves out the `name` section.
- `skip_producers_section` leaves out the `producers` section.
- `generate_dwarf` keeps custom sections whose names start with `.debug`.
  Without it, those sections are dropped.

## Building modules

```python
from wasmweave.module import Module
from wasmweave.types import ValType

module = Module()
type_id = module.types.add([ValType.I32, ValType.I32], [ValType.I64])
memory_id, import_id = module.add_import_memory("env", "memory", False, 1, 16)
table_id, _ = module.add_import_table("env", "table", 4, None, ValType.FUNCREF)
module.tables.add_local(1, None, ValType.FUNCREF)
module.memories.add_local(False, 1, None)
module.producers.add_language("C", "11")

wasm = module.emit_wasm()
```

`ModuleTypes` keeps each function type only once: adding an equal type
again returns the existing id. `types.find(params, results)` looks up an
existing type, and `types.by_name(name)` finds a named one.
`types.emittable()` lists the types in the order they are written.

`tables.main_function_table()` returns the id of the module's one
`funcref` table. It returns `None` if there is none and raises
`ValueError` if there are several.

`imports.find(module, name)` looks up an import by its module and field
name. `producers.add_processed_by` and `producers.add_sdk` record entries
in the same way as `add_language`. Adding a name that is already present
replaces its version.

## Garbage collection

```python
from wasmweave import gc
from wasmweave.gc import Roots

roots = Roots().push_memory(memory_id).push_type(type_id)
used = gc.run(module, roots)
```

`gc.run` keeps the tables, memories and types given as roots, and deletes
every other table, memory and type. It also deletes every import whose
table or memory was not kept. If no roots are given, all of these are
removed. It returns a `Used` record of what was kept, including the element
and data segment ids attached to the kept tables and memories.
`Used.compute(module, roots)` computes the same record without deleting
anything. A root that does not name a live item raises `KeyError`.

## Index and arena helpers

`wasmweave.indices.IndicesToIds` maps the position an item had in a parsed
binary to the id it has now. Looking up a position it does not know raises
`IndexOutOfBounds`.

`wasmweave.arena.TombstoneArena` stores items and hands out stable `Id`s.
Deleting an item leaves a tombstone, so the ids of the other items do not
change. An item may define `on_delete()` to release what it holds.

`wasmweave.locals.ModuleLocals` stores typed local variables by id.

## What it does not do

wasmweave has no model of functions, code or instructions. It also does
not handle globals, exports, the start function, or element and data
segments. A binary that contains a function, global, export, start,
element, code, data, data count or tag section is rejected with
`WasmError`. Imported functions and globals are rejected the same way. For
that reason, garbage collection only considers the roots you pass it.
Locals are not read from or written to binaries. There is no command-line
tool.