"""
This module defines the contracts describing the autonomous worker's health
and the outcome of the workflows it drives.

`WorkerStatus` is the snapshot written to disk after every poll cycle so that
any process can display worker health without touching the queue file.
`WorkflowResult` is what the injected executor hands back after running a
workflow; a failed workflow is a normal result, not an exception.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class WorkflowResult(BaseModel):
    """Result returned by the workflow executor."""

    success: bool
    cost_usd: float = Field(default=0.0, ge=0)
    resolution: Optional[str] = None
    error: Optional[str] = None


class WorkerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PROCESSING = "processing"
    STOPPED = "stopped"


class CurrentWorkInfo(BaseModel):
    id: str
    summary: str
    started_at: datetime


class WorkerStats(BaseModel):
    completed: int = 0
    escalated: int = 0
    failed: int = 0
    total_cost_usd: float = 0.0


class QueueStatsSnapshot(BaseModel):
    pending: int = 0
    in_progress: int = 0
    total: int = 0


class WorkerStatus(BaseModel):
    """Persisted snapshot of worker health."""

    status: WorkerState = WorkerState.IDLE
    started_at: Optional[datetime] = None
    last_poll_at: Optional[datetime] = None
    current_work: Optional[CurrentWorkInfo] = None
    stats: WorkerStats = Field(default_factory=WorkerStats)
    queue_stats: QueueStatsSnapshot = Field(default_factory=QueueStatsSnapshot)


class QueueStats(BaseModel):
    """Aggregated counts over every item currently held by the queue."""

    total_items: int = 0
    pending_count: int = 0
    in_progress_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    escalated_count: int = 0
    by_priority: Dict[str, int] = Field(default_factory=dict)
    by_tier: Dict[int, int] = Field(default_factory=dict)

    def snapshot(self) -> QueueStatsSnapshot:
        return QueueStatsSnapshot(
            pending=self.pending_count,
            in_progress=self.in_progress_count,
            total=self.total_items,
        )


__all__ = [
    "WorkflowResult",
    "WorkerState",
    "CurrentWorkInfo",
    "WorkerStats",
    "QueueStatsSnapshot",
    "WorkerStatus",
    "QueueStats",
]
