from __future__ import annotations

import pytest

from autoworker_contracts import ApprovalAction, ApprovalPolicy, ApprovalRule
from autoworker_runtime.approval import create_default_policy, evaluate_approval


@pytest.mark.parametrize(
    ("tier", "expected"),
    [
        (1, ApprovalAction.AUTO_EXECUTE),
        (2, ApprovalAction.AUTO_EXECUTE),
        (3, ApprovalAction.CONFIRM),
        (4, ApprovalAction.ESCALATE),
    ],
)
def test_tier_defaults(make_work, tier, expected) -> None:
    decision = evaluate_approval(make_work("w", tier=tier), create_default_policy())

    assert decision.decision == expected
    assert decision.rule == ApprovalRule.TIER_DEFAULT
    assert decision.reason == f"tier {tier} default -> {expected.value}"


def test_manual_review_always_escalates(make_work) -> None:
    policy = ApprovalPolicy(
        tier_defaults={1: ApprovalAction.AUTO_EXECUTE},
        source_overrides={"user-request": ApprovalAction.AUTO_EXECUTE},
    )
    decision = evaluate_approval(make_work("w", tier=1, workflow="manual-review"), policy)

    assert decision.decision == ApprovalAction.ESCALATE
    assert decision.rule == ApprovalRule.MANUAL_REVIEW


def test_source_override_beats_priority_and_tier(make_work) -> None:
    policy = ApprovalPolicy(
        source_overrides={"debugger-alert": ApprovalAction.ESCALATE},
        priority_overrides={"critical": ApprovalAction.AUTO_EXECUTE},
    )
    work = make_work("w", tier=1, priority="critical", source="debugger-alert")

    decision = evaluate_approval(work, policy)

    assert decision.decision == ApprovalAction.ESCALATE
    assert decision.rule == ApprovalRule.SOURCE_OVERRIDE
    assert decision.reason == "source override: debugger-alert -> escalate"


def test_priority_override_beats_tier(make_work) -> None:
    policy = ApprovalPolicy(priority_overrides={"critical": ApprovalAction.AUTO_EXECUTE})

    decision = evaluate_approval(make_work("w", tier=4, priority="critical"), policy)

    assert decision.decision == ApprovalAction.AUTO_EXECUTE
    assert decision.rule == ApprovalRule.PRIORITY_OVERRIDE


def test_missing_tier_default_escalates(make_work) -> None:
    policy = ApprovalPolicy(tier_defaults={1: ApprovalAction.AUTO_EXECUTE})

    decision = evaluate_approval(make_work("w", tier=2), policy)

    assert decision.decision == ApprovalAction.ESCALATE


def test_budget_guard_demotes_auto_execute(make_work) -> None:
    policy = ApprovalPolicy(max_auto_execute_budget_usd=5.0)

    decision = evaluate_approval(make_work("w", tier=1), policy, estimated_cost_usd=7.5)

    assert decision.decision == ApprovalAction.CONFIRM
    assert decision.rule == ApprovalRule.BUDGET
    assert "$7.50" in decision.reason and "$5.00" in decision.reason


def test_budget_guard_at_cap_still_auto_executes(make_work) -> None:
    policy = ApprovalPolicy(max_auto_execute_budget_usd=5.0)

    decision = evaluate_approval(make_work("w", tier=1), policy, estimated_cost_usd=5.0)

    assert decision.decision == ApprovalAction.AUTO_EXECUTE


def test_budget_guard_never_touches_confirm_or_escalate(make_work) -> None:
    policy = ApprovalPolicy(max_auto_execute_budget_usd=1.0)

    confirm = evaluate_approval(make_work("a", tier=3), policy, estimated_cost_usd=100)
    escalate = evaluate_approval(make_work("b", tier=4), policy, estimated_cost_usd=100)

    assert confirm.decision == ApprovalAction.CONFIRM
    assert confirm.rule == ApprovalRule.TIER_DEFAULT
    assert escalate.decision == ApprovalAction.ESCALATE


def test_decision_carries_tier_and_source(make_work) -> None:
    decision = evaluate_approval(make_work("w", tier=3, source="scheduled"), create_default_policy())

    assert decision.tier == 3
    assert decision.source.value == "scheduled"
