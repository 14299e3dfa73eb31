"""Exceptions raised synchronously for configuration and usage errors."""

from __future__ import annotations


class DuplicateWorkError(ValueError):
    """Raised when a work item id already exists in the queue."""

    def __init__(self, work_id: str) -> None:
        super().__init__(f"Work item with ID {work_id} already exists")
        self.work_id = work_id


class InvalidStatusTransition(ValueError):
    def __init__(self, work_id: str, current: str, target: str) -> None:
        super().__init__(f"Work item {work_id} cannot move from {current} to {target}")
        self.work_id = work_id
        self.current = current
        self.target = target


class LockHeldError(RuntimeError):
    """Raised when another process already holds the worker lock."""

    def __init__(self, path: str, owner_pid: int | None = None) -> None:
        detail = f" (pid {owner_pid})" if owner_pid is not None else ""
        super().__init__(f"Lock {path} is already held{detail}")
        self.path = path
        self.owner_pid = owner_pid


class WorkerAlreadyRunningError(RuntimeError):
    pass


__all__ = [
    "DuplicateWorkError",
    "InvalidStatusTransition",
    "LockHeldError",
    "WorkerAlreadyRunningError",
]
