"""
This module defines the configuration schema for the autonomous worker.

`WorkerConfig` collects every tunable that governs a worker process: where
its state lives, how often it polls, how much it may spend and which approval
policy it enforces. It is built once at process start, normally through
`from_environment()`, and then passed by reference into the worker; nothing
below the entry point reads the environment itself.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from autoworker_contracts import ApprovalPolicy

from ._env import env_bool, env_float, env_int

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerConfig:
    """
    Provides a structured configuration for the AutonomousWorker.

    Attributes:
        working_directory: Project root whose state directory holds the queue,
            status, lock, stop-signal and audit files.
        state_dir_name: Name of the state directory under the working directory.
        poll_interval_seconds: Delay between poll cycles.
        max_budget_usd: Cumulative spend at which auto-execution pauses.
        max_item_budget_usd: Budget handed to the executor for a single item,
            also used as the cost estimate for the approval budget guard.
        queue_max_items: Capacity of the persistent queue.
        approval_policy: Policy evaluated for every selected item.
        audit_enabled: Whether lifecycle transitions are appended to the audit log.
        events_redis_url: When set, lifecycle events are mirrored to Redis.
        events_stream_key: Redis stream receiving mirrored events.
    """

    working_directory: str = field(default_factory=lambda: str(Path.cwd()))
    state_dir_name: str = ".autoworker"
    poll_interval_seconds: float = 60.0
    max_budget_usd: float = 50.0
    max_item_budget_usd: float = 10.0
    queue_max_items: int = 100
    approval_policy: ApprovalPolicy = field(default_factory=ApprovalPolicy)
    audit_enabled: bool = True
    events_redis_url: Optional[str] = None
    events_stream_key: str = "autoworker:events"

    @property
    def state_dir(self) -> Path:
        return Path(self.working_directory) / self.state_dir_name

    @classmethod
    def from_environment(cls) -> "WorkerConfig":
        """
        Creates a `WorkerConfig` with values overridden by `AUTOWORKER_*`
        environment variables where available.

        Unparseable numeric values fall back to the defaults. An approval
        policy file named by `AUTOWORKER_APPROVAL_POLICY_PATH` replaces the
        default policy; a missing or invalid file is logged and ignored.
        """
        base = cls()

        base.working_directory = os.environ.get("AUTOWORKER_WORKDIR", base.working_directory)
        base.state_dir_name = os.environ.get("AUTOWORKER_STATE_DIR", base.state_dir_name)
        base.poll_interval_seconds = env_float(
            "AUTOWORKER_POLL_INTERVAL_SECONDS", base.poll_interval_seconds
        )
        base.max_budget_usd = env_float("AUTOWORKER_MAX_BUDGET_USD", base.max_budget_usd)
        base.max_item_budget_usd = env_float(
            "AUTOWORKER_MAX_ITEM_BUDGET_USD", base.max_item_budget_usd
        )
        base.queue_max_items = env_int("AUTOWORKER_QUEUE_MAX_ITEMS", base.queue_max_items)
        base.audit_enabled = env_bool("AUTOWORKER_AUDIT_ENABLED", base.audit_enabled)
        base.events_redis_url = os.environ.get("AUTOWORKER_EVENTS_REDIS_URL") or None
        base.events_stream_key = os.environ.get(
            "AUTOWORKER_EVENTS_STREAM_KEY", base.events_stream_key
        )

        policy_path = os.environ.get("AUTOWORKER_APPROVAL_POLICY_PATH")
        if policy_path:
            policy = load_approval_policy(Path(policy_path))
            if policy is not None:
                base.approval_policy = policy

        return base


def load_approval_policy(path: Path) -> ApprovalPolicy | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return ApprovalPolicy.model_validate(payload)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        LOGGER.warning("Ignoring approval policy at %s: %s", path, exc)
        return None
