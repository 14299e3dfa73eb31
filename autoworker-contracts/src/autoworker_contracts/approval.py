"""
This module defines the contracts for the tier-based approval policy.

The policy decides, for each work item, whether the worker may run it
unattended (`auto-execute`), must ask a human first (`confirm`) or must hand
it off entirely (`escalate`). The models here are pure data: the evaluation
logic lives in the runtime so that the policy itself can be loaded from JSON
and shipped between processes.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from .work import WorkPriority, WorkSource


class ApprovalAction(str, Enum):
    AUTO_EXECUTE = "auto-execute"
    CONFIRM = "confirm"
    ESCALATE = "escalate"


class ApprovalRule(str, Enum):
    """Which rule of the policy produced a decision."""

    MANUAL_REVIEW = "manual-review"
    SOURCE_OVERRIDE = "source-override"
    PRIORITY_OVERRIDE = "priority-override"
    TIER_DEFAULT = "tier-default"
    BUDGET = "budget"


def _default_tier_actions() -> Dict[int, ApprovalAction]:
    return {
        1: ApprovalAction.AUTO_EXECUTE,
        2: ApprovalAction.AUTO_EXECUTE,
        3: ApprovalAction.CONFIRM,
        4: ApprovalAction.ESCALATE,
    }


class ApprovalPolicy(BaseModel):
    """
    Approval policy configuration.

    Override precedence is `source_overrides` over `priority_overrides` over
    `tier_defaults`. `max_auto_execute_budget_usd` caps the estimated cost of
    anything the policy would otherwise run unattended.
    """

    model_config = ConfigDict(extra="ignore")

    tier_defaults: Dict[int, ApprovalAction] = Field(default_factory=_default_tier_actions)
    source_overrides: Dict[WorkSource, ApprovalAction] = Field(default_factory=dict)
    priority_overrides: Dict[WorkPriority, ApprovalAction] = Field(default_factory=dict)
    max_auto_execute_budget_usd: float = Field(default=10.0, ge=0)


class ApprovalDecision(BaseModel):
    """Result of evaluating the approval policy for one work item."""

    decision: ApprovalAction
    reason: str = Field(..., min_length=1)
    rule: ApprovalRule
    tier: int
    source: WorkSource


__all__ = [
    "ApprovalAction",
    "ApprovalRule",
    "ApprovalPolicy",
    "ApprovalDecision",
]
