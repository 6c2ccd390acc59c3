"""In-memory stores for executions and section configuration."""

from docflow.store.executions import (
    ExecutionStore,
    StoreEvent,
    StoreEventKind,
    TransitionSource,
    is_allowed_transition,
)
from docflow.store.sections import SectionSnapshot, SectionStore

__all__ = [
    "ExecutionStore",
    "SectionSnapshot",
    "SectionStore",
    "StoreEvent",
    "StoreEventKind",
    "TransitionSource",
    "is_allowed_transition",
]
