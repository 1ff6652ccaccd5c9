"""The ``producers`` custom section."""

from __future__ import annotations

from dataclasses import dataclass, field

from wasmweave.types import _uleb128


@dataclass
class _Value:
    name: str
    version: str


@dataclass
class _Field:
    name: str
    values: list[_Value] = field(default_factory=list)


def _encode_str(text: str) -> bytes:
    raw = text.encode("utf-8")
    return _uleb128(len(raw)) + raw


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def _byte(self) -> int:
        if self.at_end:
            raise ValueError("unexpected end of producers section")
        byte = self._data[self._pos]
        self._pos += 1
        return byte

    def u32(self) -> int:
        result = 0
        for shift in range(0, 35, 7):
            byte = self._byte()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                if result > 0xFFFF_FFFF:
                    raise ValueError("integer too large in producers section")
                return result
        raise ValueError("integer representation too long in producers section")

    def string(self) -> str:
        length = self.u32()
        end = self._pos + length
        if end > len(self._data):
            raise ValueError("unexpected end of producers section")
        raw = self._data[self._pos:end]
        self._pos = end
        return raw.decode("utf-8")


class ModuleProducers:
    """The fields of the ``producers`` section, in insertion order."""

    def __init__(self) -> None:
        self._fields: list[_Field] = []

    def add_language(self, language: str, version: str) -> None:
        """Record a source language and its version."""
        self._set("language", language, version)

    def add_processed_by(self, tool: str, version: str) -> None:
        """Record a tool that processed the module and its version."""
        self._set("processed-by", tool, version)

    def add_sdk(self, sdk: str, version: str) -> None:
        """Record an SDK and its version."""
        self._set("sdk", sdk, version)

    def _set(self, field_name: str, name: str, version: str) -> None:
        new_value = _Value(name, version)
        target = next((f for f in self._fields if f.name == field_name), None)
        if target is None:
            self._fields.append(_Field(field_name, [new_value]))
            return
        for position, value in enumerate(target.values):
            if value.name == name:
                target.values[position] = new_value
                return
        target.values.append(new_value)

    def clear(self) -> None:
        """Remove every field."""
        self._fields.clear()

    def fields(self) -> list[tuple[str, list[tuple[str, str]]]]:
        """The fields as ``(field name, [(name, version), ...])`` pairs."""
        return [
            (f.name, [(v.name, v.version) for v in f.values]) for f in self._fields
        ]

    def encode(self) -> bytes:
        """The payload of the ``producers`` custom section."""
        out = bytearray(_uleb128(len(self._fields)))
        for f in self._fields:
            out += _encode_str(f.name)
            out += _uleb128(len(f.values))
            for v in f.values:
                out += _encode_str(v.name)
                out += _encode_str(v.version)
        return bytes(out)

    @classmethod
    def decode(cls, data: bytes) -> "ModuleProducers":
        """Parse a ``producers`` section payload; ValueError if malformed."""
        reader = _Reader(data)
        producers = cls()
        for _ in range(reader.u32()):
            name = reader.string()
            values = [
                _Value(reader.string(), reader.string())
                for _ in range(reader.u32())
            ]
            producers._fields.append(_Field(name, values))
        if not reader.at_end:
            raise ValueError("trailing bytes in producers section")
        return producers