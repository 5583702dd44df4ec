"""Read-only views over values held by a state.

``Accessor.get()`` never hands out the live dicts and lists of the tree.
Containers are wrapped in views that read through to the tree and raise
``ReadOnlyValueError`` on any write, so the store stays the only mutator.

Each view also exposes ``.meta``: a side-channel dict attached to the node's
path. It is not part of the value, not enumerated, and not tracked.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Mapping, Sequence
from typing import Any, Iterator

from pathstate.errors import ReadOnlyValueError
from pathstate.path import Path, is_prefix


class NodeMeta:
    """Per-path metadata dicts, owned by a state."""

    __slots__ = ("_by_path",)

    def __init__(self) -> None:
        self._by_path: dict[Path, dict] = {}

    def for_path(self, path: Path) -> dict:
        meta = self._by_path.get(path)
        if meta is None:
            return _UnsetMeta(self, path)
        return meta

    def prune(self, path: Path) -> None:
        """Drop metadata of path and every descendant."""
        for p in [p for p in self._by_path if is_prefix(path, p)]:
            del self._by_path[p]

    def compact(self, list_path: Path, deleted) -> None:
        """Follow list items down after the indices in deleted were removed from list_path."""
        deleted = sorted(deleted)
        gone = set(deleted)
        depth = len(list_path)
        moved = {}
        for p in list(self._by_path):
            if len(p) <= depth or p[:depth] != list_path or not isinstance(p[depth], int):
                continue
            meta = self._by_path.pop(p)
            index = p[depth]
            if index in gone:
                continue
            moved[list_path + (index - bisect_left(deleted, index),) + p[depth + 1 :]] = meta
        self._by_path.update(moved)

    def clear(self) -> None:
        self._by_path.clear()


class _UnsetMeta(dict):
    """Meta dict of a path that has none yet. Joins the store on first write."""

    __slots__ = ("_owner", "_path")

    def __init__(self, owner: NodeMeta, path: Path) -> None:
        super().__init__()
        self._owner = owner
        self._path = path

    def _attach(self) -> None:
        if self._owner is None:
            return
        stored = self._owner._by_path.setdefault(self._path, self)
        if stored is self:
            self._owner = None
        else:
            stored.update(self)

    def __setitem__(self, key, value) -> None:
        super().__setitem__(key, value)
        self._attach()

    def update(self, *args, **kwargs) -> None:
        super().update(*args, **kwargs)
        self._attach()

    def setdefault(self, key, default=None):
        result = super().setdefault(key, default)
        self._attach()
        return result


def freeze(value: Any, path: Path, meta: NodeMeta | None = None) -> Any:
    """Wrap dicts and lists in read-only views; return scalars unchanged."""
    if isinstance(value, dict):
        return FrozenDict(value, path, meta)
    if isinstance(value, list):
        return FrozenList(value, path, meta)
    return value


def thaw(value: Any) -> Any:
    """Deep-copy a value (or view) into plain dicts and lists."""
    if isinstance(value, (FrozenDict, FrozenList)):
        value = value._data
    if isinstance(value, dict):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, list):
        return [thaw(v) for v in value]
    return value


class _View:
    __slots__ = ("_data", "_path", "_meta")

    def __init__(self, data, path: Path, meta: NodeMeta | None) -> None:
        self._data = data
        self._path = path
        self._meta = meta

    @property
    def meta(self) -> dict:
        if self._meta is None:
            return {}
        return self._meta.for_path(self._path)

    def _child(self, key, value):
        return freeze(value, self._path + (key,), self._meta)

    def _read_only(self, *args, **kwargs):
        raise ReadOnlyValueError(self._path)

    def __setitem__(self, key, value) -> None:
        raise ReadOnlyValueError(self._path, key)

    def __delitem__(self, key) -> None:
        raise ReadOnlyValueError(self._path, key)

    def __setattr__(self, name: str, value) -> None:
        if name in _View.__slots__:
            object.__setattr__(self, name, value)
        else:
            raise ReadOnlyValueError(self._path, name)


class FrozenDict(_View, Mapping):
    """Read-only view of a dict in the tree."""

    __slots__ = ()

    def __getitem__(self, key):
        return self._child(key, self._data[key])

    def __iter__(self) -> Iterator:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key) -> bool:
        return key in self._data

    update = pop = popitem = setdefault = clear = _View._read_only

    def __repr__(self) -> str:
        return f"FrozenDict({self._data!r})"


class FrozenList(_View, Sequence):
    """Read-only view of a list in the tree."""

    __slots__ = ()

    def __getitem__(self, index):
        if isinstance(index, slice):
            start, _, step = index.indices(len(self._data))
            return tuple(
                self._child(start + i * step, v) for i, v in enumerate(self._data[index])
            )
        if index < 0:
            index += len(self._data)
        return self._child(index, self._data[index])

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, FrozenList):
            other = other._data
        if isinstance(other, (list, tuple)):
            return len(self._data) == len(other) and all(
                a == b for a, b in zip(self, other)
            )
        return NotImplemented

    __hash__ = None

    append = extend = insert = pop = remove = clear = sort = reverse = _View._read_only

    def __repr__(self) -> str:
        return f"FrozenList({self._data!r})"
