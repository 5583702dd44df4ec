"""pathstate: fine-grained, path-addressed reactive state for Python."""

from importlib.metadata import version as _version

__version__ = _version("pathstate")

from pathstate._frozen import FrozenDict, FrozenList, thaw
from pathstate._tracking import ObservationContext, begin, tracking, untracked
from pathstate.accessor import Accessor, accessor_for
from pathstate.action import batched, transaction
from pathstate.errors import (
    AsyncUnavailableError,
    ErrorId,
    InvalidPathError,
    NestedPromiseError,
    PluginNotAttachedError,
    ReadOnlyValueError,
    StateDestroyedError,
    StateError,
    StateValueError,
)
from pathstate.path import ROOT, Path, to_path
from pathstate.plugins import (
    BatchArgument,
    DestroyArgument,
    Plugin,
    PluginCallbacks,
    PluginId,
    PluginStateControl,
    SetArgument,
)
from pathstate.promise import set_scheduler
from pathstate.reaction import Reaction, autorun, reaction
from pathstate.state import State, create_state, postpone
from pathstate.store import ValueStore, none
# textual NOT auto-imported, opt-in only

__all__ = [
    "create_state",
    "State",
    "Accessor",
    "accessor_for",
    "none",
    "postpone",
    "ROOT",
    "Path",
    "to_path",
    "ValueStore",
    "ObservationContext",
    "begin",
    "tracking",
    "untracked",
    "batched",
    "transaction",
    "Reaction",
    "autorun",
    "reaction",
    "Plugin",
    "PluginId",
    "PluginCallbacks",
    "PluginStateControl",
    "SetArgument",
    "DestroyArgument",
    "BatchArgument",
    "set_scheduler",
    "FrozenDict",
    "FrozenList",
    "thaw",
    "ErrorId",
    "StateError",
    "StateValueError",
    "NestedPromiseError",
    "StateDestroyedError",
    "AsyncUnavailableError",
    "ReadOnlyValueError",
    "PluginNotAttachedError",
    "InvalidPathError",
]
