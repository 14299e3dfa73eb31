"""
Core runtime for the autoworker: the autonomous worker loop, its persistent
queue and approval policy, and the supervision tools (stall detection,
context management, enforcement hooks) used while an agent executes a
workflow.

Public names are resolved lazily through `__getattr__` so that importing the
package does not pull in langchain-core or redis until a component that needs
them is actually used.
"""

from importlib import import_module
from typing import Any, Dict, Tuple

__all__ = [
    "AutonomousWorker",
    "request_stop",
    "PersistentQueue",
    "evaluate_approval",
    "create_default_policy",
    "WorkerEvents",
    "RedisEventPublisher",
    "FileQueueSource",
    "AlertSource",
    "ValidationFailureSource",
    "work_from_validation",
    "enqueue_manual_work",
    "StallDetector",
    "ContextManager",
    "HookContext",
    "execute_hook",
    "enforce_credential_safety",
    "WorkerConfig",
    "StallDetectionConfig",
    "ContextManagerConfig",
    "configure_logging",
    "load_worker_status",
    "read_audit_log",
]


_ATTR_MODULE_MAP: Dict[str, Tuple[str, str]] = {
    "AutonomousWorker": ("worker", "AutonomousWorker"),
    "request_stop": ("worker", "request_stop"),
    "PersistentQueue": ("queue", "PersistentQueue"),
    "evaluate_approval": ("approval", "evaluate_approval"),
    "create_default_policy": ("approval", "create_default_policy"),
    "WorkerEvents": ("events", "WorkerEvents"),
    "RedisEventPublisher": ("events", "RedisEventPublisher"),
    "FileQueueSource": ("sources", "FileQueueSource"),
    "AlertSource": ("sources", "AlertSource"),
    "ValidationFailureSource": ("sources", "ValidationFailureSource"),
    "work_from_validation": ("sources", "work_from_validation"),
    "enqueue_manual_work": ("sources", "enqueue_manual_work"),
    "StallDetector": ("stall_detection", "StallDetector"),
    "ContextManager": ("context_manager", "ContextManager"),
    "HookContext": ("hooks", "HookContext"),
    "execute_hook": ("hooks", "execute_hook"),
    "enforce_credential_safety": ("hooks", "enforce_credential_safety"),
    "WorkerConfig": ("config", "WorkerConfig"),
    "StallDetectionConfig": ("config", "StallDetectionConfig"),
    "ContextManagerConfig": ("config", "ContextManagerConfig"),
    "configure_logging": ("logging_utils", "configure_logging"),
    "load_worker_status": ("worker_status", "load_worker_status"),
    "read_audit_log": ("audit", "read_audit_log"),
}


def __getattr__(name: str) -> Any:
    try:
        module_name, attribute = _ATTR_MODULE_MAP[name]
    except KeyError as exc:  # pragma: no cover - guard against typos
        raise AttributeError(f"module 'autoworker_runtime' has no attribute {name!r}") from exc

    module = import_module(f".{module_name}", __name__)
    value = getattr(module, attribute)
    globals()[name] = value
    return value
