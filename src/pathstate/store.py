"""ValueStore — owner and sole mutator of a state's value tree.

The store knows nothing about tracking, plugins or notification. Each mutation
returns an ``Update`` describing which paths changed; the owning state decides
who hears about it.

Changed paths follow two rules:

- a write at a path reports that path;
- a write that adds or removes keys also reports the parent container,
  because its key set changed.

List deletions compact the list (later elements shift down), so deleting a
trailing run shortens the list and deleting from the middle renumbers what
follows.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pathstate.errors import InvalidPathError
from pathstate.path import ROOT, Path


class _Marker:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


# Write-only deletion marker: set(none) removes the key from its parent.
none = _Marker("none")

# Returned by ValueStore.get for paths that do not exist.
MISSING = _Marker("MISSING")


@dataclass(frozen=True)
class Update:
    """Result of one structural mutation."""

    paths: tuple = ()
    previous: Any = MISSING
    value: Any = MISSING
    merged: Any = MISSING
    removed: tuple = ()
    # (list_path, deleted_indices) for every list that was compacted
    compacted: tuple = ()

    def __bool__(self) -> bool:
        return bool(self.paths)


class ValueStore:
    """Holds the root value and applies set/merge/delete at a path."""

    __slots__ = ("_root",)

    def __init__(self, value: Any = MISSING) -> None:
        self._root = value

    @property
    def root(self) -> Any:
        return self._root

    def get(self, path: Path) -> Any:
        """Return the value at path, or MISSING."""
        node = self._root
        for key in path:
            if isinstance(node, dict):
                if key not in node:
                    return MISSING
                node = node[key]
            elif isinstance(node, list):
                if not isinstance(key, int) or key >= len(node):
                    return MISSING
                node = node[key]
            else:
                return MISSING
        return node

    # --- set ---

    def set(self, path: Path, value: Any) -> Update:
        """Replace the value at path; ``none`` deletes it from its parent."""
        if not path:
            previous = self._root
            self._root = MISSING if value is none else value
            return Update(paths=(ROOT,), previous=previous, value=value, removed=())

        container = self.get(path[:-1])
        if not isinstance(container, (dict, list)):
            if value is none:
                return Update(previous=MISSING, value=none)
            raise InvalidPathError(path, "parent is not a dict or list")
        key = path[-1]
        if isinstance(container, dict):
            return self._set_in_dict(container, path, key, value)
        return self._set_in_list(container, path, _index(path, key), value)

    def _set_in_dict(self, container: dict, path: Path, key, value) -> Update:
        parent_path = path[:-1]
        if value is none:
            if key not in container:
                return Update(previous=MISSING, value=none)
            previous = container.pop(key)
            return Update(paths=(path, parent_path), previous=previous, value=none, removed=(path,))

        previous = container.get(key, MISSING)
        container[key] = value
        paths = (path,) if previous is not MISSING else (path, parent_path)
        return Update(paths=paths, previous=previous, value=value)

    def _set_in_list(self, container: list, path: Path, index: int, value) -> Update:
        parent_path = path[:-1]
        length = len(container)
        if value is none:
            if index >= length:
                return Update(previous=MISSING, value=none)
            previous = container.pop(index)
            return Update(
                paths=(path, parent_path),
                previous=previous,
                value=none,
                removed=(parent_path + (length - 1,),),
                compacted=((parent_path, (index,)),),
            )

        if index < length:
            previous = container[index]
            container[index] = value
            return Update(paths=(path,), previous=previous, value=value)

        # gaps past the end are padded with None
        container.extend([None] * (index - length))
        container.append(value)
        return Update(paths=(path, parent_path), previous=MISSING, value=value)

    # --- merge ---

    def merge(self, path: Path, value: Any) -> Update:
        """Merge value into the current value at path, dispatching on its shape."""
        current = self.get(path)
        if isinstance(current, dict) and isinstance(value, Mapping):
            return self._merge_dict(current, path, value)
        if isinstance(current, list) and isinstance(value, (list, tuple)):
            return self._merge_append(current, path, value)
        if isinstance(current, list) and isinstance(value, Mapping):
            return self._merge_indexed(current, path, value)
        if isinstance(current, str) and value is not none:
            update = self.set(path, current + str(value))
            return Update(paths=update.paths, previous=current, value=update.value, merged=value)
        update = self.set(path, value)
        return Update(
            paths=update.paths,
            previous=update.previous,
            value=update.value,
            merged=value,
            removed=update.removed,
            compacted=update.compacted,
        )

    def _merge_dict(self, current: dict, path: Path, patch: Mapping) -> Update:
        previous = dict(current)
        paths: list[Path] = []
        removed: list[Path] = []
        keys_changed = False
        for key, item in patch.items():
            child = path + (key,)
            if item is none:
                if key in current:
                    del current[key]
                    paths.append(child)
                    removed.append(child)
                    keys_changed = True
            else:
                if key not in current:
                    keys_changed = True
                current[key] = item
                paths.append(child)
        if keys_changed:
            paths.append(path)
        return Update(
            paths=tuple(paths), previous=previous, value=current, merged=patch, removed=tuple(removed)
        )

    def _merge_append(self, current: list, path: Path, items) -> Update:
        previous = list(current)
        start = len(current)
        current.extend(items)
        paths = tuple(path + (i,) for i in range(start, len(current)))
        if paths:
            paths += (path,)
        return Update(paths=paths, previous=previous, value=current, merged=items)

    def _merge_indexed(self, current: list, path: Path, patch: Mapping) -> Update:
        previous = list(current)
        length = len(current)
        paths: list[Path] = []
        deleted: list[int] = []
        for raw_index in sorted(patch, key=lambda k: _index(path, k)):
            index = _index(path, raw_index)
            item = patch[raw_index]
            if item is none:
                if index < len(current):
                    deleted.append(index)
                    paths.append(path + (index,))
                continue
            if index >= len(current):
                current.extend([None] * (index - len(current) + 1))
            current[index] = item
            paths.append(path + (index,))
        # ascending order, so pop from the end to keep positions stable
        for index in reversed(deleted):
            del current[index]
        removed = tuple(path + (i,) for i in range(len(current), length))
        if len(current) != length:
            paths.append(path)
        return Update(
            paths=tuple(paths),
            previous=previous,
            value=current,
            merged=patch,
            removed=removed,
            compacted=((path, tuple(deleted)),) if deleted else (),
        )


def _index(path: Path, key) -> int:
    if isinstance(key, bool):
        raise InvalidPathError(path, f"invalid list index {key!r}")
    if isinstance(key, str) and key.isdigit():
        return int(key)
    if not isinstance(key, int) or key < 0:
        raise InvalidPathError(path, f"invalid list index {key!r}")
    return key
