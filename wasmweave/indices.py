"""Mapping from index spaces of a parsed binary to arena ids."""

from __future__ import annotations

from wasmweave.arena import Id

_KINDS = ("tables", "types", "funcs", "globals", "memories", "elements", "data")


class IndexOutOfBounds(IndexError):
    """An index that the parsed binary did not define."""


class IndicesToIds:
    """Maps indices in a parsed binary to the ids they were given.

    Items added after parsing have no index here.
    """

    def __init__(self) -> None:
        self._ids: dict[str, list[Id]] = {kind: [] for kind in _KINDS}
        self._locals: dict[Id, list[Id]] = {}

    def _push(self, kind: str, id: Id) -> int:
        ids = self._ids[kind]
        ids.append(id)
        return len(ids) - 1

    def _get(self, kind: str, index: int) -> Id:
        ids = self._ids[kind]
        if 0 <= index < len(ids):
            return ids[index]
        raise IndexOutOfBounds(f"index `{index}` is out of bounds for {kind}")

    def push_table(self, id: Id) -> int:
        return self._push("tables", id)

    def get_table(self, index: int) -> Id:
        return self._get("tables", index)

    def push_type(self, id: Id) -> int:
        return self._push("types", id)

    def get_type(self, index: int) -> Id:
        return self._get("types", index)

    def push_func(self, id: Id) -> int:
        return self._push("funcs", id)

    def get_func(self, index: int) -> Id:
        return self._get("funcs", index)

    def push_global(self, id: Id) -> int:
        return self._push("globals", id)

    def get_global(self, index: int) -> Id:
        return self._get("globals", index)

    def push_memory(self, id: Id) -> int:
        return self._push("memories", id)

    def get_memory(self, index: int) -> Id:
        return self._get("memories", index)

    def push_element(self, id: Id) -> int:
        return self._push("elements", id)

    def get_element(self, index: int) -> Id:
        return self._get("elements", index)

    def push_data(self, id: Id) -> int:
        return self._push("data", id)

    def get_data(self, index: int) -> Id:
        return self._get("data", index)

    def push_local(self, function: Id, id: Id) -> int:
        """Map the next local index of ``function`` to ``id``."""
        locals_ = self._locals.setdefault(function, [])
        locals_.append(id)
        return len(locals_) - 1

    def get_local(self, function: Id, index: int) -> Id:
        """Return the id of local ``index`` of ``function``."""
        locals_ = self._locals.get(function)
        if locals_ is None:
            raise IndexOutOfBounds(
                f"function index `{function.index}` is out of bounds for local"
            )
        if 0 <= index < len(locals_):
            return locals_[index]
        raise IndexOutOfBounds(
            f"index `{index}` in function `{function.index}` is out of bounds for local"
        )