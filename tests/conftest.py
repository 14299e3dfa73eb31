"""Pytest configuration for shared fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable

import pytest
from dotenv import load_dotenv

from autoworker_contracts import (
    DiscoveredWork,
    SuggestedWorkflow,
    WorkPriority,
    WorkSource,
)


def _load_env_files(paths: Iterable[Path]) -> None:
    """Load local dotenv files without overriding any pre-set environment vars."""
    for env_path in paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)


_REPO_ROOT = Path(__file__).resolve().parent.parent
_load_env_files((_REPO_ROOT / ".env",))

_BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_work() -> Callable[..., DiscoveredWork]:
    """
    Factory for work items with deterministic discovery times.

    `offset_seconds` shifts `discovered_at` from a fixed base time so that
    tests can control tie-breaking on equal priority and tier.
    """

    def _factory(
        work_id: str,
        *,
        priority: WorkPriority | str = WorkPriority.MEDIUM,
        tier: int = 2,
        source: WorkSource | str = WorkSource.USER_REQUEST,
        workflow: SuggestedWorkflow | str = SuggestedWorkflow.BUG_FIX,
        offset_seconds: int = 0,
        **extra,
    ) -> DiscoveredWork:
        return DiscoveredWork(
            id=work_id,
            discovered_at=_BASE_TIME + timedelta(seconds=offset_seconds),
            source=source,
            priority=priority,
            tier=tier,
            suggested_workflow=workflow,
            summary=extra.pop("summary", f"summary for {work_id}"),
            description=extra.pop("description", f"description for {work_id}"),
            **extra,
        )

    return _factory
