"""Paths — immutable key tuples addressing a location in the value tree.

A path is a plain tuple of keys. String keys address dict entries, integer
keys address list indices. The empty tuple is the root.
"""

from __future__ import annotations

from typing import Iterable, Union

from pathstate.errors import InvalidPathError

Key = Union[str, int]
Path = tuple  # tuple[Key, ...]

ROOT: Path = ()


def _check_key(key: object) -> Key:
    # bool is an int subclass but never a valid index
    if isinstance(key, bool) or not isinstance(key, (str, int)):
        raise InvalidPathError(ROOT, f"invalid key {key!r}")
    if isinstance(key, int) and key < 0:
        raise InvalidPathError(ROOT, f"negative index {key}")
    return key


def to_path(keys: Key | Iterable[Key] | None) -> Path:
    """Canonicalize a key, a sequence of keys, or None into a path tuple."""
    if keys is None:
        return ROOT
    if isinstance(keys, (str, int)):
        return (_check_key(keys),)
    return tuple(_check_key(k) for k in keys)


def child(path: Path, key: Key) -> Path:
    return path + (_check_key(key),)


def parent(path: Path) -> Path:
    return path[:-1]


def is_prefix(prefix: Path, path: Path) -> bool:
    """True if prefix equals path or is one of its ancestors."""
    return len(prefix) <= len(path) and path[: len(prefix)] == prefix


def related(a: Path, b: Path) -> bool:
    """Ancestor/descendant overlap in either direction."""
    return is_prefix(a, b) or is_prefix(b, a)


def format_path(path: Path) -> str:
    return "/" + "/".join(str(k) for k in path)
