"""
Tier-based approval policy evaluation.

`evaluate_approval` is a pure function of the work item, the policy and an
optional cost estimate. Rules are applied in precedence order and the first
one that matches decides; the budget guard then runs last and may only demote
`auto-execute` to `confirm`.
"""

from __future__ import annotations

from typing import Optional

from autoworker_contracts import (
    ApprovalAction,
    ApprovalDecision,
    ApprovalPolicy,
    ApprovalRule,
    DiscoveredWork,
    SuggestedWorkflow,
)


def create_default_policy() -> ApprovalPolicy:
    return ApprovalPolicy()


def evaluate_approval(
    work: DiscoveredWork,
    policy: ApprovalPolicy,
    *,
    estimated_cost_usd: Optional[float] = None,
) -> ApprovalDecision:
    """
    Decide whether `work` may run unattended.

    Precedence, highest first: the manual-review workflow always escalates,
    then a source override, then a priority override, then the tier default.
    A tier with no configured default escalates.
    """
    if work.suggested_workflow == SuggestedWorkflow.MANUAL_REVIEW:
        return ApprovalDecision(
            decision=ApprovalAction.ESCALATE,
            reason="manual-review workflow requires human handling",
            rule=ApprovalRule.MANUAL_REVIEW,
            tier=work.tier,
            source=work.source,
        )

    source_override = policy.source_overrides.get(work.source)
    priority_override = policy.priority_overrides.get(work.priority)
    tier_default = policy.tier_defaults.get(work.tier)

    if source_override is not None:
        action = source_override
        rule = ApprovalRule.SOURCE_OVERRIDE
        reason = f"source override: {work.source.value} -> {action.value}"
    elif priority_override is not None:
        action = priority_override
        rule = ApprovalRule.PRIORITY_OVERRIDE
        reason = f"priority override: {work.priority.value} -> {action.value}"
    elif tier_default is not None:
        action = tier_default
        rule = ApprovalRule.TIER_DEFAULT
        reason = f"tier {work.tier} default -> {action.value}"
    else:
        action = ApprovalAction.ESCALATE
        rule = ApprovalRule.TIER_DEFAULT
        reason = f"tier {work.tier} default -> escalate (no default configured)"

    if (
        action == ApprovalAction.AUTO_EXECUTE
        and estimated_cost_usd is not None
        and estimated_cost_usd > policy.max_auto_execute_budget_usd
    ):
        return ApprovalDecision(
            decision=ApprovalAction.CONFIRM,
            reason=(
                f"budget cap: estimated cost ${estimated_cost_usd:.2f} exceeds "
                f"auto-execute budget of ${policy.max_auto_execute_budget_usd:.2f}"
            ),
            rule=ApprovalRule.BUDGET,
            tier=work.tier,
            source=work.source,
        )

    return ApprovalDecision(
        decision=action,
        reason=reason,
        rule=rule,
        tier=work.tier,
        source=work.source,
    )


__all__ = ["evaluate_approval", "create_default_policy"]
