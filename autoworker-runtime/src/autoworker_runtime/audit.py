"""
Append-only execution record for the autonomous worker.

Every lifecycle transition is written as one JSON line to `audit.jsonl` in
the worker's state directory. Records are never rewritten, which keeps the
log usable for post-hoc review of what ran, what was escalated and what it
cost even if the queue file is later cleared.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

LOGGER = logging.getLogger(__name__)

AUDIT_FILE_NAME = "audit.jsonl"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _safe_json_dump(data: Dict[str, Any]) -> str:
    def _default(value: Any):
        if hasattr(value, "model_dump"):
            return value.model_dump(mode="json")  # type: ignore[no-any-return]
        if isinstance(value, datetime):
            return value.isoformat()
        if hasattr(value, "value"):
            return getattr(value, "value")
        return str(value)

    return json.dumps(data, default=_default, separators=(",", ":"))


class AuditLog:
    """
    Appends structured lifecycle records to a JSONL file.

    Write failures are logged and swallowed; losing an audit line must never
    abort a poll cycle.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, event: str, **data: Any) -> Dict[str, Any]:
        entry = {"timestamp": _utc_iso(), "event": event, **data}
        line = _safe_json_dump(entry)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Failed to append audit record %s: %s", event, exc)
        return entry


def read_audit_log(path: str | Path) -> List[Dict[str, Any]]:
    target = Path(path)
    if not target.exists():
        return []
    entries: List[Dict[str, Any]] = []
    with target.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return entries


__all__ = ["AuditLog", "read_audit_log", "AUDIT_FILE_NAME"]
