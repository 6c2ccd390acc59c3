"""Execution lifecycle coordination."""

from docflow.coordinator.approval import ApprovalHandle, ApprovalStateMachine
from docflow.coordinator.cache import CacheConsistencyLayer, View
from docflow.coordinator.coordinator import (
    ExecutionCoordinator,
    ExecutionHandle,
    ExecutionRequest,
    SelectedExecution,
)
from docflow.coordinator.guard import GuardDecision, MutualExclusionGuard, Operation
from docflow.coordinator.ledger import NotificationLedger
from docflow.coordinator.poller import (
    CompletionEvent,
    CompletionPoller,
    CompletionWatch,
    WatchKind,
)
from docflow.coordinator.tracker import RegenerationEntry, SectionRegenerationTracker

__all__ = [
    "ApprovalHandle",
    "ApprovalStateMachine",
    "CacheConsistencyLayer",
    "CompletionEvent",
    "CompletionPoller",
    "CompletionWatch",
    "ExecutionCoordinator",
    "ExecutionHandle",
    "ExecutionRequest",
    "GuardDecision",
    "MutualExclusionGuard",
    "NotificationLedger",
    "Operation",
    "RegenerationEntry",
    "SectionRegenerationTracker",
    "SelectedExecution",
    "View",
    "WatchKind",
]
