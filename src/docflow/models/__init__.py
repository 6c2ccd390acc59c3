"""Data models for executions and sections."""

from docflow.models.execution import (
    IMMUTABLE_STATUSES,
    MUTABLE_STATUSES,
    NON_TERMINAL_STATUSES,
    Execution,
    ExecutionMode,
    ExecutionSnapshot,
    ExecutionStatus,
    SectionOutput,
    SectionStatusSnapshot,
)
from docflow.models.section import Section, SectionType

__all__ = [
    "IMMUTABLE_STATUSES",
    "MUTABLE_STATUSES",
    "NON_TERMINAL_STATUSES",
    "Execution",
    "ExecutionMode",
    "ExecutionSnapshot",
    "ExecutionStatus",
    "Section",
    "SectionOutput",
    "SectionStatusSnapshot",
    "SectionType",
]
