"""
Discovers and runs a project's test suite for the enforcement hooks.

The runner infers the test command from workspace metadata (a Python
project runs pytest under the current interpreter, a project with a
`package.json` test script runs npm), executes it in a subprocess with a
timeout and parses the summary that pytest or Jest prints. Coverage runs
reuse the same discovery and parse pytest-cov's terminal report or Jest's
text summary.

A non-zero exit status is expected when tests fail and is not an error; an
error is reported only when the command could not run or its output could
not be understood.
"""
from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

DEFAULT_TEST_TIMEOUT_SECONDS = 120
DEFAULT_COVERAGE_TIMEOUT_SECONDS = 180
DEFAULT_COVERAGE_THRESHOLD = 80.0

_PYTHON_MARKERS = ("pyproject.toml", "setup.cfg", "setup.py", "pytest.ini", "tox.ini")


@dataclass(frozen=True)
class TestCommand:
    """A test command discovered from workspace metadata."""

    __test__ = False

    command: Tuple[str, ...]
    cwd: Path
    runner: str
    description: str


@dataclass(slots=True)
class TestRunResult:
    __test__ = False

    tests_found: bool
    total_tests: int = 0
    passing_tests: int = 0
    failing_tests: int = 0
    raw_output: str = ""
    error: Optional[str] = None


@dataclass(slots=True)
class UncoveredFile:
    file: str
    coverage: float
    uncovered_lines: List[int] = field(default_factory=list)


@dataclass(slots=True)
class CoverageResult:
    success: bool
    coverage_percent: float = 0.0
    statement_coverage: float = 0.0
    branch_coverage: float = 0.0
    function_coverage: float = 0.0
    line_coverage: float = 0.0
    uncovered_files: List[UncoveredFile] = field(default_factory=list)
    raw_output: str = ""
    error: Optional[str] = None


def discover_test_command(root: Path, *, coverage: bool = False) -> Optional[TestCommand]:
    """Infer the command that runs the project's tests, or None."""
    package_json = root / "package.json"
    if package_json.exists():
        try:
            scripts = json.loads(package_json.read_text()).get("scripts", {})
        except (OSError, json.JSONDecodeError, AttributeError):
            scripts = {}
        script = scripts.get("test") if isinstance(scripts, dict) else None
        if isinstance(script, str) and "no test specified" not in script.lower():
            command: Tuple[str, ...] = ("npm", "test", "--", "--ci", "--passWithNoTests=false")
            if coverage:
                command = (
                    "npm",
                    "test",
                    "--",
                    "--coverage",
                    "--ci",
                    "--coverageReporters=text-summary",
                    "--coverageReporters=text",
                )
            return TestCommand(command, root, "jest", "package.json:test")

    if any((root / marker).exists() for marker in _PYTHON_MARKERS) or (root / "tests").is_dir():
        command = (sys.executable, "-m", "pytest", "-q")
        if coverage:
            command = command + ("--cov", "--cov-report=term-missing")
        return TestCommand(command, root, "pytest", "pytest")

    return None


def _execute(spec: TestCommand, timeout_seconds: int) -> Tuple[str, int, Optional[str]]:
    env = os.environ.copy()
    env["CI"] = "true"
    try:
        completed = subprocess.run(  # noqa: S603
            list(spec.command),
            cwd=str(spec.cwd),
            capture_output=True,
            text=True,
            env=env,
            timeout=timeout_seconds,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return "", -1, f"Test command timed out after {timeout_seconds}s"
    except (FileNotFoundError, PermissionError) as exc:
        return "", -1, str(exc)
    output = (completed.stdout or "") + (completed.stderr or "")
    return output, completed.returncode, None


# ---------------------------------------------------------------------------
# Test summaries
# ---------------------------------------------------------------------------

_PYTEST_SUMMARY = re.compile(r"^.*\b\d+ (?:passed|failed|errors?)\b.* in [\d.]+s.*$", re.MULTILINE)
_JEST_TESTS = re.compile(r"^Tests:\s*(?P<body>.*?)(?P<total>\d+) total", re.MULTILINE)
_JEST_SUITES_FAILED = re.compile(r"Test Suites:\s*(\d+) failed")


def _count(pattern: str, text: str) -> int:
    match = re.search(pattern, text)
    return int(match.group(1)) if match else 0


def parse_pytest_output(output: str, returncode: int | None = None) -> TestRunResult:
    summaries = _PYTEST_SUMMARY.findall(output)
    if summaries:
        line = summaries[-1]
        passed = _count(r"(\d+) passed", line)
        failed = _count(r"(\d+) failed", line)
        errors = _count(r"(\d+) errors?\b", line)
        failing = failed + errors
        return TestRunResult(
            tests_found=(passed + failing) > 0,
            total_tests=passed + failing,
            passing_tests=passed,
            failing_tests=failing,
            raw_output=output,
        )
    if returncode == 5 or "no tests ran" in output:
        return TestRunResult(tests_found=False, raw_output=output)
    return TestRunResult(tests_found=False, raw_output=output, error="Could not parse test output")


def parse_jest_output(output: str) -> TestRunResult:
    matches = list(_JEST_TESTS.finditer(output))
    if matches:
        match = matches[-1]
        body = match.group("body")
        total = int(match.group("total"))
        failed = _count(r"(\d+) failed", body)
        passed = _count(r"(\d+) passed", body)
        suites_failed = _count(_JEST_SUITES_FAILED.pattern, output)
        if total == 0:
            return TestRunResult(tests_found=False, raw_output=output)
        if failed == 0 and suites_failed:
            # test files that crash on import count as failing
            return TestRunResult(
                tests_found=True,
                total_tests=total + suites_failed,
                passing_tests=passed,
                failing_tests=suites_failed,
                raw_output=output,
            )
        return TestRunResult(
            tests_found=True,
            total_tests=total,
            passing_tests=passed,
            failing_tests=failed,
            raw_output=output,
        )
    if "No tests found" in output:
        return TestRunResult(tests_found=False, raw_output=output)
    return TestRunResult(tests_found=False, raw_output=output, error="Could not parse test output")


def run_tests(
    working_directory: str | Path,
    *,
    timeout_seconds: int = DEFAULT_TEST_TIMEOUT_SECONDS,
) -> TestRunResult:
    root = Path(working_directory)
    spec = discover_test_command(root)
    if spec is None:
        return TestRunResult(tests_found=False, error=f"No test command found in {root}")
    LOGGER.debug("Running %s in %s", " ".join(spec.command), spec.cwd)
    output, returncode, error = _execute(spec, timeout_seconds)
    if error:
        return TestRunResult(tests_found=False, raw_output=output, error=error)
    if spec.runner == "jest":
        return parse_jest_output(output)
    return parse_pytest_output(output, returncode)


# ---------------------------------------------------------------------------
# Coverage reports
# ---------------------------------------------------------------------------

_PYTEST_COV_TOTAL = re.compile(r"^TOTAL\s+.*?(\d+(?:\.\d+)?)%", re.MULTILINE)
_PYTEST_COV_ROW = re.compile(
    r"^(?P<file>\S+\.py)\s+\d+\s+\d+(?:\s+\d+\s+\d+)?\s+(?P<pct>\d+(?:\.\d+)?)%(?P<missing>.*)$",
    re.MULTILINE,
)
_JEST_METRIC = "{name}\\s*:\\s*([\\d.]+)%"
_JEST_ROW = re.compile(r"^\s*[\w/.-]+\.(?:js|ts|jsx|tsx)\s*\|.*$", re.MULTILINE)


def _parse_line_numbers(text: str) -> List[int]:
    numbers: List[int] = []
    for part in re.split(r"[,\s]+", text.strip()):
        if not part:
            continue
        if "->" in part:
            # branch arcs such as 12->15
            part = part.split("->", 1)[0]
        if "-" in part:
            start, _, end = part.partition("-")
            if start.isdigit() and end.isdigit():
                numbers.extend(range(int(start), int(end) + 1))
            continue
        if part.isdigit():
            numbers.append(int(part))
    return numbers


def _metric(name: str, output: str) -> float:
    match = re.search(_JEST_METRIC.format(name=name), output, re.IGNORECASE)
    return float(match.group(1)) if match else 0.0


def parse_coverage_output(output: str, *, threshold: float = DEFAULT_COVERAGE_THRESHOLD) -> CoverageResult:
    """
    Parse a pytest-cov or Jest coverage report.

    Files below `threshold` are listed in `uncovered_files`, worst first.
    """
    uncovered: List[UncoveredFile] = []

    total_match = _PYTEST_COV_TOTAL.search(output)
    if total_match:
        percent = float(total_match.group(1))
        for row in _PYTEST_COV_ROW.finditer(output):
            pct = float(row.group("pct"))
            if pct < threshold:
                uncovered.append(
                    UncoveredFile(row.group("file"), pct, _parse_line_numbers(row.group("missing")))
                )
        uncovered.sort(key=lambda item: item.coverage)
        return CoverageResult(
            success=True,
            coverage_percent=percent,
            statement_coverage=percent,
            line_coverage=percent,
            uncovered_files=uncovered,
            raw_output=output,
        )

    statements = _metric("Statements", output)
    branches = _metric("Branches?", output)
    functions = _metric("Functions?", output)
    lines = _metric("Lines?", output)
    percent = (statements + branches) / 2 if (statements > 0 or branches > 0) else 0.0

    for row in _JEST_ROW.findall(output):
        parts = [part.strip() for part in row.split("|")]
        if len(parts) < 5:
            continue
        try:
            pct = float(parts[1])
        except ValueError:
            continue
        if pct < threshold:
            missing = parts[5] if len(parts) > 5 else ""
            uncovered.append(UncoveredFile(parts[0], pct, _parse_line_numbers(missing)))
    uncovered.sort(key=lambda item: item.coverage)

    success = percent > 0
    return CoverageResult(
        success=success,
        coverage_percent=percent,
        statement_coverage=statements,
        branch_coverage=branches,
        function_coverage=functions,
        line_coverage=lines,
        uncovered_files=uncovered,
        raw_output=output,
        error=None if success else "Could not parse coverage data from output",
    )


def run_coverage(
    working_directory: str | Path,
    *,
    threshold: float = DEFAULT_COVERAGE_THRESHOLD,
    timeout_seconds: int = DEFAULT_COVERAGE_TIMEOUT_SECONDS,
) -> CoverageResult:
    root = Path(working_directory)
    spec = discover_test_command(root, coverage=True)
    if spec is None:
        return CoverageResult(success=False, error=f"No test command found in {root}")
    output, _, error = _execute(spec, timeout_seconds)
    if error:
        return CoverageResult(success=False, raw_output=output, error=error)
    return parse_coverage_output(output, threshold=threshold)


def result_payload(result: TestRunResult) -> Dict[str, int]:
    return {
        "total_tests": result.total_tests,
        "passing_tests": result.passing_tests,
        "failing_tests": result.failing_tests,
    }


__all__ = [
    "TestCommand",
    "TestRunResult",
    "CoverageResult",
    "UncoveredFile",
    "discover_test_command",
    "parse_pytest_output",
    "parse_jest_output",
    "parse_coverage_output",
    "run_tests",
    "run_coverage",
    "result_payload",
    "DEFAULT_COVERAGE_THRESHOLD",
]
