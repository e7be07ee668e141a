"""Dynamic fog of war: per-observer visibility from obstruction segments."""

from .compose import CompositionError, DynfogError
from .session import VisionSession
from .store import InMemoryStore, SceneStore
from .timing import PerformanceReport
from .types import METADATA_PREFIX, SceneItem, SceneSnapshot, meta_key

__all__ = [
    "CompositionError",
    "DynfogError",
    "InMemoryStore",
    "METADATA_PREFIX",
    "PerformanceReport",
    "SceneItem",
    "SceneSnapshot",
    "SceneStore",
    "VisionSession",
    "meta_key",
]
