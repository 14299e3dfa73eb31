"""Gate before the QA phase: coverage must meet a threshold."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict

from autoworker_contracts import HookResult

from .base import Hook, HookContext
from .suite_runner import DEFAULT_COVERAGE_THRESHOLD, CoverageResult, run_coverage

LOGGER = logging.getLogger(__name__)

HOOK_NAME = "coverage-threshold"
MAX_REPORTED_FILES = 5

CoverageRunner = Callable[[str], CoverageResult]


def _coverage_data(result: CoverageResult, threshold: float) -> Dict[str, Any]:
    return {
        "coverage_percent": result.coverage_percent,
        "statement_coverage": result.statement_coverage,
        "branch_coverage": result.branch_coverage,
        "function_coverage": result.function_coverage,
        "line_coverage": result.line_coverage,
        "uncovered_files": [asdict(item) for item in result.uncovered_files],
        "threshold": threshold,
    }


def _coverage_executor(runner: CoverageRunner, threshold: float) -> Callable[[HookContext], HookResult]:
    def execute(context: HookContext) -> HookResult:
        dev = context.previous_phase_results.get("dev")
        if dev is None:
            return HookResult(passed=False, error="Coverage threshold hook: dev phase has not run.")
        if not dev.success:
            return HookResult(
                passed=False,
                error="Coverage threshold hook: dev phase failed. Cannot check coverage.",
            )
        if dev.output.get("all_tests_passing") is not True:
            return HookResult(
                passed=False,
                error=(
                    "Coverage threshold hook: tests are not passing. "
                    "Fix tests before checking coverage."
                ),
            )

        (LOGGER.info if context.verbose else LOGGER.debug)("[%s] running coverage analysis", HOOK_NAME)
        result = runner(str(context.working_directory))

        if result.error and result.coverage_percent == 0:
            return HookResult(
                passed=False,
                error=f"Coverage threshold hook: {result.error}",
                data={"raw_output": result.raw_output},
            )

        data = _coverage_data(result, threshold)
        if result.coverage_percent < threshold:
            worst = result.uncovered_files[:MAX_REPORTED_FILES]
            warnings = []
            if worst:
                listing = "\n".join(f"  - {item.file}: {item.coverage:.1f}%" for item in worst)
                warnings.append(f"Files below threshold:\n{listing}")
            return HookResult(
                passed=False,
                error=f"Coverage threshold not met: {result.coverage_percent:.1f}% < {threshold:g}%",
                data=data,
                warnings=warnings,
            )

        warnings = []
        if result.uncovered_files:
            warnings.append(f"{len(result.uncovered_files)} file(s) below {threshold:g}% coverage")
        return HookResult(passed=True, data=data, warnings=warnings)

    return execute


def create_coverage_threshold_hook(
    runner: CoverageRunner | None = None,
    threshold: float = DEFAULT_COVERAGE_THRESHOLD,
) -> Hook:
    def _default_runner(working_directory: str) -> CoverageResult:
        return run_coverage(working_directory, threshold=threshold)

    return Hook(
        name=HOOK_NAME,
        description=f"Verifies test coverage meets {threshold:g}% before the QA phase",
        execute=_coverage_executor(runner or _default_runner, threshold),
    )


__all__ = ["create_coverage_threshold_hook", "HOOK_NAME", "CoverageRunner", "MAX_REPORTED_FILES"]
