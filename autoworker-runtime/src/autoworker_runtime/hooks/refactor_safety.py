"""Gate before refactor phases: the whole suite must pass as a baseline."""

from __future__ import annotations

import logging
from typing import Callable

from autoworker_contracts import HookResult

from .base import Hook, HookContext
from .suite_runner import TestRunResult, result_payload, run_tests

LOGGER = logging.getLogger(__name__)

HOOK_NAME = "test-passing-enforcement"

TestRunner = Callable[[str], TestRunResult]


def _default_runner(working_directory: str) -> TestRunResult:
    return run_tests(working_directory)


def _test_passing_executor(test_runner: TestRunner) -> Callable[[HookContext], HookResult]:
    def execute(context: HookContext) -> HookResult:
        (LOGGER.info if context.verbose else LOGGER.debug)("[%s] verifying baseline", HOOK_NAME)
        result = test_runner(str(context.working_directory))
        if result.error:
            return HookResult(
                passed=False,
                error=f"REFACTOR SAFETY VIOLATION: Could not run tests: {result.error}",
                data={"raw_output": result.raw_output},
            )
        if not result.tests_found:
            return HookResult(
                passed=False,
                error=(
                    "REFACTOR SAFETY VIOLATION: No tests found. "
                    "Cannot refactor without passing tests as a safety baseline."
                ),
                data={"raw_output": result.raw_output},
            )
        if result.failing_tests > 0:
            return HookResult(
                passed=False,
                error=(
                    f"REFACTOR SAFETY VIOLATION: {result.failing_tests} tests failing. "
                    "Cannot refactor with failing tests. Fix tests first or use bug-fix workflow."
                ),
                data={**result_payload(result), "raw_output": result.raw_output},
            )
        return HookResult(passed=True, data=result_payload(result))

    return execute


def create_test_passing_hook(test_runner: TestRunner | None = None) -> Hook:
    return Hook(
        name=HOOK_NAME,
        description="Verifies all tests pass before refactoring",
        execute=_test_passing_executor(test_runner or _default_runner),
    )


__all__ = ["create_test_passing_hook", "HOOK_NAME"]
