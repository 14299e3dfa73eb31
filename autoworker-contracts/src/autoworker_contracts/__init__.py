"""
This package defines the shared data contracts and schemas used throughout the
autoworker system.

It is the single source of truth for the records that move between work
sources, the persistent queue, the approval policy, the worker and the gates
that supervise an executing agent. The models are Pydantic-based, which gives
validation on the way in and a stable JSON representation on the way out to
disk.
"""
from .agent import (
    CredentialViolation,
    HookResult,
    PhaseResult,
    StallEvent,
    StallType,
    ToolCallRecord,
)
from .approval import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalPolicy,
    ApprovalRule,
)
from .diagnosis import (
    Diagnosis,
    Evidence,
    FixActionType,
    RootCause,
    RootCauseCategory,
    SuggestedFix,
    ValidationResult,
)
from .work import (
    MAX_TIER,
    MIN_TIER,
    PRIORITY_ORDER,
    DiscoveredWork,
    SuggestedWorkflow,
    WorkflowType,
    WorkPriority,
    WorkSource,
    WorkStatus,
)
from .worker import (
    CurrentWorkInfo,
    QueueStats,
    QueueStatsSnapshot,
    WorkerState,
    WorkerStats,
    WorkerStatus,
    WorkflowResult,
)

__all__ = [
    "DiscoveredWork",
    "WorkSource",
    "WorkPriority",
    "PRIORITY_ORDER",
    "SuggestedWorkflow",
    "WorkflowType",
    "WorkStatus",
    "MIN_TIER",
    "MAX_TIER",
    "ApprovalAction",
    "ApprovalDecision",
    "ApprovalPolicy",
    "ApprovalRule",
    "Diagnosis",
    "RootCause",
    "RootCauseCategory",
    "Evidence",
    "SuggestedFix",
    "FixActionType",
    "ValidationResult",
    "WorkflowResult",
    "WorkerState",
    "WorkerStatus",
    "WorkerStats",
    "CurrentWorkInfo",
    "QueueStats",
    "QueueStatsSnapshot",
    "StallType",
    "StallEvent",
    "ToolCallRecord",
    "PhaseResult",
    "HookResult",
    "CredentialViolation",
]

__version__ = "0.1.0"
