"""Path helpers and the explicit output-tree builder.

Catalog keys may themselves contain dots (flat catalogs such as
``{"about.date": "Build Date:"}`` are common), so paths are carried as
tuples of segments internally and only joined into dotted strings for
display and for ``FeatureSet`` keys.

Output trees are always built fresh by ``TreeBuilder``; nothing here
mutates a tree it was handed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

Path = tuple[str, ...]


class _Absent:
    """Marker for a leaf that a candidate or judge did not provide."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()


def dotted(path: Iterable[str]) -> str:
    """Join path segments into the dotted key used in reports."""
    return ".".join(path)


def lookup(tree: Any, path: Path) -> Any:
    """Return the value at ``path`` or ``ABSENT`` if any segment is missing."""
    node = tree
    for segment in path:
        if not isinstance(node, Mapping) or segment not in node:
            return ABSENT
        node = node[segment]
    return node


def _copy(node: Any) -> Any:
    if isinstance(node, Mapping):
        return {key: _copy(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_copy(item) for item in node]
    return node


class TreeBuilder:
    """Builds a new nested dict by writing leaves at explicit paths.

    Example::

        builder = TreeBuilder()
        builder.set(("about", "date"), "Date du build :")
        builder.build()  # {"about": {"date": "Date du build :"}}
    """

    def __init__(self, base: Mapping | None = None) -> None:
        self._root: dict = _copy(base) if base is not None else {}

    def set(self, path: Path, value: Any) -> None:
        if not path:
            raise ValueError("Cannot assign to the empty path")
        node = self._root
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[path[-1]] = value

    def ensure(self, path: Path) -> None:
        """Create an (empty) container at ``path`` if nothing is there yet."""
        node = self._root
        for segment in path:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child

    def build(self) -> dict:
        return self._root


def merge(base: Mapping, assignments: Iterable[tuple[Path, Any]]) -> dict:
    """Return a fresh copy of ``base`` with each ``(path, value)`` written in."""
    builder = TreeBuilder(base)
    for path, value in assignments:
        builder.set(path, value)
    return builder.build()
