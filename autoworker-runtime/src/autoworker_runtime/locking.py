"""
File-based mutual exclusion between worker processes.

The lock file records the owning PID and acquisition time for diagnostics
only. Presence of the file is what blocks a second worker; a lock left
behind by a crashed process is never reclaimed automatically and has to be
removed by an operator.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import LockHeldError

LOGGER = logging.getLogger(__name__)


class FileLock:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._held = False

    def acquire(self) -> None:
        """
        Create the lock file exclusively.

        Raises:
            LockHeldError: If the file already exists.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            owner = self.owner() or {}
            raise LockHeldError(str(self.path), owner.get("pid")) from None
        record = {
            "pid": os.getpid(),
            "started_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(record, handle)
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            LOGGER.warning("Lock file %s vanished before release", self.path)
        self._held = False

    def is_held(self) -> bool:
        """True when this instance currently owns the lock."""
        return self._held

    def owner(self) -> Optional[Dict[str, Any]]:
        """Contents of the lock file, or None if absent or unreadable."""
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


__all__ = ["FileLock"]
