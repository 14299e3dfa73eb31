"""
Gate before the implementation phase: tests must exist and must fail.

The hook first checks that the test-generation phase ran, succeeded and
reported `tests_created > 0`, then runs the suite. A suite where every test
already passes leaves nothing to implement and blocks the phase.
"""

from __future__ import annotations

import logging
from typing import Callable

from autoworker_contracts import HookResult

from .base import Hook, HookContext
from .suite_runner import TestRunResult, result_payload, run_tests

LOGGER = logging.getLogger(__name__)

HOOK_NAME = "tdd-enforcement"

TestRunner = Callable[[str], TestRunResult]


def _default_runner(working_directory: str) -> TestRunResult:
    return run_tests(working_directory)


def _tdd_executor(test_runner: TestRunner) -> Callable[[HookContext], HookResult]:
    def execute(context: HookContext) -> HookResult:
        test_gen = context.previous_phase_results.get("test-gen")
        if test_gen is None:
            return HookResult(
                passed=False,
                error="TDD VIOLATION: test-gen phase has not run. Cannot proceed to dev phase.",
            )
        if not test_gen.success:
            return HookResult(
                passed=False,
                error="TDD VIOLATION: test-gen phase failed. Cannot proceed to dev phase.",
            )
        tests_created = test_gen.output.get("tests_created") or 0
        if tests_created <= 0:
            return HookResult(
                passed=False,
                error=(
                    "TDD VIOLATION: No tests were created in test-gen phase. "
                    "Cannot proceed without failing tests."
                ),
            )

        log = LOGGER.info if context.verbose else LOGGER.debug
        log("[%s] running tests to verify they fail", HOOK_NAME)
        result = test_runner(str(context.working_directory))

        if result.error:
            return HookResult(
                passed=False,
                error=f"TDD VIOLATION: Could not run tests: {result.error}",
                data={"raw_output": result.raw_output},
            )
        if not result.tests_found:
            return HookResult(
                passed=False,
                error=(
                    "TDD VIOLATION: No tests found when running the test suite. "
                    "Test files may not be configured correctly."
                ),
                data={"raw_output": result.raw_output},
            )
        if result.failing_tests == 0:
            return HookResult(
                passed=False,
                error=(
                    f"TDD VIOLATION: All {result.total_tests} tests pass. "
                    "There is nothing to implement. Tests must FAIL before implementation."
                ),
                data={**result_payload(result), "raw_output": result.raw_output},
            )

        log("[%s] %d/%d tests failing", HOOK_NAME, result.failing_tests, result.total_tests)
        warnings = []
        if result.passing_tests > 0:
            warnings.append(
                f"{result.passing_tests} tests already pass. "
                "These may be from previous work or helper tests."
            )
        return HookResult(passed=True, data=result_payload(result), warnings=warnings)

    return execute


def create_tdd_enforcement_hook(test_runner: TestRunner | None = None) -> Hook:
    return Hook(
        name=HOOK_NAME,
        description="Verifies tests exist and fail before the implementation phase",
        execute=_tdd_executor(test_runner or _default_runner),
    )


__all__ = ["create_tdd_enforcement_hook", "HOOK_NAME", "TestRunner"]
