"""Read, edit and write the type, import, table and memory sections of WebAssembly modules."""

__version__ = "0.1.0"
__all__ = ["arena", "indices", "types", "memories", "tables", "locals", "imports", "producers", "module", "gc"]