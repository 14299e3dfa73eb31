"""
This module defines the data contracts for units of work discovered by the
autoworker system.

A `DiscoveredWork` item is the single record that flows through the whole
scheduler: sources produce it, the persistent queue ranks and stores it, the
approval policy evaluates it and the worker drives it through its status
lifecycle. The enumerations here are the shared vocabulary for sources,
priorities, workflows and statuses, and their string values are the on-disk
wire format.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .diagnosis import Diagnosis


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkSource(str, Enum):
    """Where a work item was discovered."""

    VALIDATION_FAILURE = "validation-failure"
    DEBUGGER_ALERT = "debugger-alert"
    USER_REQUEST = "user-request"
    SCHEDULED = "scheduled"
    WEBHOOK_ERROR = "webhook-error"


class WorkPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: Tuple[WorkPriority, ...] = (
    WorkPriority.CRITICAL,
    WorkPriority.HIGH,
    WorkPriority.MEDIUM,
    WorkPriority.LOW,
)


class SuggestedWorkflow(str, Enum):
    """The kind of workflow a source believes will resolve the work."""

    BUG_FIX = "bug-fix"
    REFACTOR = "refactor"
    NEW_FEATURE = "new-feature"
    INVESTIGATION = "investigation"
    MANUAL_REVIEW = "manual-review"


class WorkflowType(str, Enum):
    """Workflows the executor knows how to run."""

    BUG_FIX = "bug-fix"
    REFACTOR = "refactor"
    NEW_FEATURE = "new-feature"


class WorkStatus(str, Enum):
    """
    Lifecycle status of a work item.

    Items start `pending`. The worker moves them to `in-progress` when it
    hands them to the executor and then to `completed` or `failed`. Items the
    policy refuses to run are moved straight from `pending` to `escalated`.
    """

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ESCALATED = "escalated"

    def can_transition_to(self, target: "WorkStatus") -> bool:
        if target == self:
            return True
        return target in _ALLOWED_TRANSITIONS.get(self, frozenset())


_ALLOWED_TRANSITIONS = {
    WorkStatus.PENDING: frozenset({WorkStatus.IN_PROGRESS, WorkStatus.ESCALATED}),
    WorkStatus.IN_PROGRESS: frozenset({WorkStatus.COMPLETED, WorkStatus.FAILED}),
}

MIN_TIER = 1
MAX_TIER = 4


class DiscoveredWork(BaseModel):
    """
    A candidate task discovered by a work source.

    `tier` is the operator-assigned trust level: tier 1 is the most trusted
    to run unattended and tier 4 the least. Together with `priority` and
    `discovered_at` it defines the ranking used both to pick the next item
    and to choose an eviction victim when the queue is full.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: str = Field(..., min_length=1)
    discovered_at: datetime = Field(default_factory=_utc_now)
    source: WorkSource
    priority: WorkPriority = WorkPriority.MEDIUM
    tier: int = Field(default=3, ge=MIN_TIER, le=MAX_TIER)
    suggested_workflow: SuggestedWorkflow = SuggestedWorkflow.BUG_FIX
    summary: str = ""
    description: str = ""
    status: WorkStatus = WorkStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    resolution: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    resource_ids: List[str] = Field(default_factory=list)
    diagnosis: Optional[Diagnosis] = None

    @field_validator("discovered_at", "started_at", "completed_at")
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive timestamps are taken to be UTC so ordering never mixes kinds."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def rank_key(self) -> Tuple[int, int, datetime]:
        """
        Sort key where smaller means "run sooner".

        Orders by priority (critical first), then tier ascending, then the
        earliest discovery time.
        """
        return (PRIORITY_ORDER.index(self.priority), self.tier, self.discovered_at)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


__all__ = [
    "WorkSource",
    "WorkPriority",
    "PRIORITY_ORDER",
    "SuggestedWorkflow",
    "WorkflowType",
    "WorkStatus",
    "MIN_TIER",
    "MAX_TIER",
    "DiscoveredWork",
]
