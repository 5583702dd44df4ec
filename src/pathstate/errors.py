"""Exceptions raised by pathstate.

Every error carries a numeric ``ErrorId`` and the path it was raised for, so a
message always reads ``PATHSTATE-<code> [path: /a/0]. <description>``.

Codes are grouped by concern:

- 1xx: state lifecycle and asynchronous values
- 2xx: access to values returned by ``get()``
- 3xx: plugins
- 4xx: paths

Only programmer misuse raises. Rejected futures are captured on the state
(see ``Accessor.error``) and structural edge cases such as deleting an absent
key are silent no-ops.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ErrorId(IntEnum):
    STATE_USED_AS_VALUE = 101
    NESTED_PROMISE = 105
    STATE_DESTROYED = 106
    ASYNC_UNAVAILABLE = 107
    READ_ONLY_VALUE = 202
    PLUGIN_NOT_ATTACHED = 301
    INVALID_PATH = 401


class StateError(Exception):
    """Base class for every error raised by pathstate.

    Attributes:
        error_id (ErrorId): Stable numeric code of the failure.
        path (tuple): Path of the accessor the failure was raised for.
        details (str): Human-readable description.
    """

    def __init__(self, error_id: ErrorId, path: tuple = (), details: Optional[str] = None):
        self.error_id = error_id
        self.path = tuple(path)
        self.details = details
        super().__init__(self._message())

    def _message(self) -> str:
        location = "/" + "/".join(str(k) for k in self.path)
        parts = [f"PATHSTATE-{int(self.error_id)} [path: {location}]"]
        if self.details:
            parts.append(self.details)
        return ". ".join(parts)


class StateValueError(StateError):
    """Raised when a state or accessor is passed where a plain value is expected.

    States own their values; nesting one state inside another would let two
    stores mutate the same tree.
    """

    def __init__(self, path: tuple = ()):
        super().__init__(
            ErrorId.STATE_USED_AS_VALUE,
            path,
            "a State or Accessor cannot be used as a value; pass .get() instead",
        )


class NestedPromiseError(StateError):
    """Raised when a future is written below the root path."""

    def __init__(self, path: tuple):
        super().__init__(ErrorId.NESTED_PROMISE, path, "only the root value can be set to a future")


class StateDestroyedError(StateError):
    """Raised by every accessor operation once ``State.destroy()`` has run."""

    def __init__(self, path: tuple = ()):
        super().__init__(ErrorId.STATE_DESTROYED, path, "state has been destroyed")


class AsyncUnavailableError(StateError):
    """Raised when a coroutine is given to a state outside a running event loop."""

    def __init__(self, path: tuple = (), original_exception: Optional[BaseException] = None):
        self.original_exception = original_exception
        super().__init__(
            ErrorId.ASYNC_UNAVAILABLE,
            path,
            "coroutines need a running event loop; pass a Future instead",
        )


class ReadOnlyValueError(StateError):
    """Raised when writing into a value obtained from ``get()``.

    Values handed out by accessors are read-only views. Use ``set()`` or
    ``merge()`` on the accessor for the path instead.
    """

    def __init__(self, path: tuple, key: object = None):
        self.key = key
        target = f"key {key!r}" if key is not None else "value"
        super().__init__(
            ErrorId.READ_ONLY_VALUE,
            path,
            f"cannot write {target} of a value returned by get(); use set() or merge()",
        )


class PluginNotAttachedError(StateError):
    """Reported when a plugin id is looked up on a state it was never attached to.

    This is a recoverable condition: ``Accessor.attach(plugin_id)`` returns the
    error instead of raising it so plugins can degrade when a peer is absent.
    """

    def __init__(self, plugin_id: object, path: tuple = ()):
        self.plugin_id = plugin_id
        super().__init__(ErrorId.PLUGIN_NOT_ATTACHED, path, f"plugin {plugin_id!r} is not attached")


class InvalidPathError(StateError):
    """Raised for malformed keys or paths that cannot be dereferenced."""

    def __init__(self, path: tuple, details: str = "path does not exist"):
        super().__init__(ErrorId.INVALID_PATH, path, details)
