"""
Durable, priority-ordered store of discovered work.

`PersistentQueue` exclusively owns the `work-queue.json` file in the worker's
state directory. Every mutating call performs a full read-modify-persist
cycle so that another process reading the file always sees a complete
snapshot. The file is advisory: if it cannot be parsed the queue starts
empty and logs a warning rather than refusing to run.

`get_next_work()` picks the pending item with the smallest
`DiscoveredWork.rank_key()`. When the queue is full, `add()` evicts the member
with the lowest priority, then the highest tier, and among those the oldest.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from autoworker_contracts import (
    PRIORITY_ORDER,
    DiscoveredWork,
    QueueStats,
    WorkStatus,
)

from .errors import DuplicateWorkError, InvalidStatusTransition

LOGGER = logging.getLogger(__name__)

QUEUE_FILE_NAME = "work-queue.json"
QUEUE_FORMAT_VERSION = "1.0.0"
DEFAULT_MAX_ITEMS = 100


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _eviction_key(item: DiscoveredWork) -> tuple:
    # Ties on priority and tier evict the oldest item.
    return (PRIORITY_ORDER.index(item.priority), item.tier, -item.discovered_at.timestamp())


class PersistentQueue:
    """
    File-backed work queue with bounded size.

    Args:
        working_directory: Project root; the queue file lives under
            ``<working_directory>/<state_dir_name>/work-queue.json``.
        max_items: Capacity. Adding beyond it evicts the lowest-ranked item.
        state_dir_name: Name of the state directory.
    """

    def __init__(
        self,
        working_directory: str | Path,
        *,
        max_items: int = DEFAULT_MAX_ITEMS,
        state_dir_name: str = ".autoworker",
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.state_dir = Path(working_directory) / state_dir_name
        self.queue_file = self.state_dir / QUEUE_FILE_NAME
        self.max_items = max_items
        self._items: Dict[str, DiscoveredWork] = {}
        self._load()

    # ------------------------------------------------------------------ reads

    def __len__(self) -> int:
        return len(self._items)

    def has(self, work_id: str) -> bool:
        return work_id in self._items

    def get(self, work_id: str) -> Optional[DiscoveredWork]:
        return self._items.get(work_id)

    def get_all(self) -> List[DiscoveredWork]:
        return list(self._items.values())

    def get_pending(self) -> List[DiscoveredWork]:
        """Pending items in execution order."""
        pending = [item for item in self._items.values() if item.status == WorkStatus.PENDING]
        return sorted(pending, key=lambda item: item.rank_key())

    def get_next_work(self) -> Optional[DiscoveredWork]:
        pending = self.get_pending()
        return pending[0] if pending else None

    def get_stats(self) -> QueueStats:
        status_counts = Counter(item.status for item in self._items.values())
        priority_counts = Counter(item.priority for item in self._items.values())
        tier_counts = Counter(item.tier for item in self._items.values())
        return QueueStats(
            total_items=len(self._items),
            pending_count=status_counts[WorkStatus.PENDING],
            in_progress_count=status_counts[WorkStatus.IN_PROGRESS],
            completed_count=status_counts[WorkStatus.COMPLETED],
            failed_count=status_counts[WorkStatus.FAILED],
            escalated_count=status_counts[WorkStatus.ESCALATED],
            by_priority={priority.value: priority_counts[priority] for priority in PRIORITY_ORDER},
            by_tier=dict(sorted(tier_counts.items())),
        )

    # -------------------------------------------------------------- mutations

    def add(self, work: DiscoveredWork) -> Optional[DiscoveredWork]:
        """
        Insert a work item, evicting the lowest-ranked member if full.

        Returns:
            The evicted item, or None when nothing had to be evicted.

        Raises:
            DuplicateWorkError: If an item with the same id is already queued.
        """
        if work.id in self._items:
            raise DuplicateWorkError(work.id)
        evicted: Optional[DiscoveredWork] = None
        if len(self._items) >= self.max_items:
            evicted = self._evict_lowest_ranked()
        self._items[work.id] = work
        self._save()
        return evicted

    def remove(self, work_id: str) -> bool:
        if work_id not in self._items:
            return False
        del self._items[work_id]
        self._save()
        return True

    def update(self, work_id: str, **changes: Any) -> Optional[DiscoveredWork]:
        """
        Apply field changes to a queued item and persist.

        Status changes are validated against the lifecycle; other fields are
        validated by the model.

        Returns:
            The updated item, or None if the id is unknown.
        """
        current = self._items.get(work_id)
        if current is None:
            return None
        changes.pop("id", None)
        if "status" in changes:
            target = WorkStatus(changes["status"])
            if not current.status.can_transition_to(target):
                raise InvalidStatusTransition(work_id, current.status.value, target.value)
            changes["status"] = target
        payload = current.model_dump()
        payload.update(changes)
        updated = DiscoveredWork.model_validate(payload)
        self._items[work_id] = updated
        self._save()
        return updated

    def clear(self) -> None:
        self._items.clear()
        self._save()

    # ---------------------------------------------------------------- helpers

    def _evict_lowest_ranked(self) -> DiscoveredWork:
        victim = max(self._items.values(), key=_eviction_key)
        del self._items[victim.id]
        LOGGER.info(
            "Queue at capacity (%d); evicted %s (priority=%s tier=%d)",
            self.max_items,
            victim.id,
            victim.priority.value,
            victim.tier,
        )
        return victim

    def _load(self) -> None:
        if not self.queue_file.exists():
            return
        try:
            payload = json.loads(self.queue_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Queue file %s unreadable, starting empty: %s", self.queue_file, exc)
            return
        raw_items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(raw_items, list):
            LOGGER.warning("Queue file %s has no item list, starting empty", self.queue_file)
            return
        for raw in raw_items:
            try:
                work = DiscoveredWork.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Skipping malformed queue entry in %s: %s", self.queue_file, exc)
                continue
            self._items[work.id] = work

    def _save(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        document = {
            "version": QUEUE_FORMAT_VERSION,
            "updated_at": _utc_iso(),
            "items": [item.to_payload() for item in self._items.values()],
        }
        tmp_path = self.queue_file.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.queue_file)


__all__ = ["PersistentQueue", "QUEUE_FILE_NAME", "DEFAULT_MAX_ITEMS"]
