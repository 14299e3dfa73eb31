"""
Pluggable work discovery for the autonomous worker.

A work source is any object satisfying `WorkSourceProvider`: a `name`, the
`WorkSource` it produces, an `enabled` flag and an async `poll()` returning
only items it has not returned before. Three providers ship here:

- `FileQueueSource` reads a hand-edited `manual-queue.json` in the state
  directory and marks each entry consumed once it has been handed out.
- `ValidationFailureSource` turns diagnosed validation failures into work,
  classifying each by root-cause category and confidence.
- `AlertSource` wraps an async alert fetcher (an error-monitoring API) and
  classifies each alert by its numeric error code.

Providers treat their own failures as "nothing this cycle": an unreadable
queue file or a failed fetch is logged and yields an empty list.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from autoworker_contracts import (
    Diagnosis,
    DiscoveredWork,
    RootCauseCategory,
    SuggestedWorkflow,
    WorkPriority,
    WorkSource,
)

LOGGER = logging.getLogger(__name__)

MANUAL_QUEUE_FILE_NAME = "manual-queue.json"


@runtime_checkable
class WorkSourceProvider(Protocol):
    name: str
    source: WorkSource
    enabled: bool

    async def poll(self) -> List[DiscoveredWork]:
        ...


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class RecentIds:
    """Insertion-ordered set of ids that forgets the oldest beyond `capacity`."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._ids: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, key: str) -> bool:
        """Record `key`; returns False if it was already known."""
        if key in self._ids:
            self._ids.move_to_end(key)
            return False
        self._ids[key] = None
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)
        return True


# --------------------------------------------------------------------------
# Manual file queue
# --------------------------------------------------------------------------


class ManualQueueItem(BaseModel):
    id: str
    description: str
    priority: Optional[WorkPriority] = None
    workflow: Optional[SuggestedWorkflow] = None
    consumed: bool = False


def manual_item_to_work(item: ManualQueueItem) -> DiscoveredWork:
    """User requests are trusted (tier 2) unless they ask for manual review."""
    workflow = item.workflow or SuggestedWorkflow.BUG_FIX
    tier = 4 if workflow == SuggestedWorkflow.MANUAL_REVIEW else 2
    return DiscoveredWork(
        id=f"manual-{item.id}-{_timestamp_ms()}",
        source=WorkSource.USER_REQUEST,
        priority=item.priority or WorkPriority.MEDIUM,
        tier=tier,
        suggested_workflow=workflow,
        summary=item.description,
        description=f"User-requested work: {item.description}",
        tags=["manual", workflow.value],
    )


class FileQueueSource:
    """Reads `<state_dir>/manual-queue.json` and hands out unconsumed entries."""

    name = "file-queue"
    source = WorkSource.USER_REQUEST

    def __init__(self, state_dir: str | Path, *, enabled: bool = True) -> None:
        self.queue_file = Path(state_dir) / MANUAL_QUEUE_FILE_NAME
        self.enabled = enabled

    async def poll(self) -> List[DiscoveredWork]:
        if not self.queue_file.exists():
            return []
        try:
            payload = json.loads(self.queue_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Manual queue %s unreadable: %s", self.queue_file, exc)
            return []

        raw_items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(raw_items, list):
            return []

        discovered: List[DiscoveredWork] = []
        for raw in raw_items:
            if not isinstance(raw, dict) or raw.get("consumed"):
                continue
            try:
                item = ManualQueueItem.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Skipping malformed manual queue entry %r: %s", raw.get("id"), exc)
                continue
            raw["consumed"] = True
            discovered.append(manual_item_to_work(item))

        if discovered:
            self.queue_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return discovered


def enqueue_manual_work(
    state_dir: str | Path,
    description: str,
    *,
    priority: WorkPriority | None = None,
    workflow: SuggestedWorkflow | None = None,
    item_id: str | None = None,
) -> ManualQueueItem:
    """Append an entry to the manual queue file for the next poll to pick up."""
    queue_file = Path(state_dir) / MANUAL_QUEUE_FILE_NAME
    payload: Dict[str, Any] = {"items": []}
    if queue_file.exists():
        try:
            existing = json.loads(queue_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            existing = None
        if isinstance(existing, dict) and isinstance(existing.get("items"), list):
            payload = existing
    item = ManualQueueItem(
        id=item_id or uuid.uuid4().hex[:8],
        description=description,
        priority=priority,
        workflow=workflow,
    )
    payload["items"].append(item.model_dump(mode="json", exclude_none=True))
    queue_file.parent.mkdir(parents=True, exist_ok=True)
    queue_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return item


# --------------------------------------------------------------------------
# Validation failures
# --------------------------------------------------------------------------


def determine_priority(diagnosis: Diagnosis) -> WorkPriority:
    """Blocking configuration faults are critical; code faults are high."""
    category = diagnosis.root_cause.category
    if category == RootCauseCategory.CONFIGURATION and diagnosis.root_cause.confidence > 0.8:
        return WorkPriority.CRITICAL
    if category == RootCauseCategory.CODE:
        return WorkPriority.HIGH
    if category in (RootCauseCategory.EXTERNAL, RootCauseCategory.TIMING):
        return WorkPriority.MEDIUM
    return WorkPriority.LOW


def determine_automation_tier(diagnosis: Diagnosis) -> int:
    """
    Tier 1 is a confident configuration fix with an automated remedy, tier 2
    a likely code fix with one. Anything else with suggested fixes and some
    confidence needs review (tier 3); the rest is manual (tier 4).
    """
    category = diagnosis.root_cause.category
    confidence = diagnosis.root_cause.confidence
    automated = diagnosis.has_automated_fix()
    if category == RootCauseCategory.CONFIGURATION and automated and confidence > 0.8:
        return 1
    if category == RootCauseCategory.CODE and automated and confidence > 0.6:
        return 2
    if diagnosis.suggested_fixes and confidence > 0.5:
        return 3
    return 4


def suggest_workflow(diagnosis: Diagnosis) -> SuggestedWorkflow:
    category = diagnosis.root_cause.category
    if category == RootCauseCategory.CONFIGURATION:
        return SuggestedWorkflow.BUG_FIX
    if category == RootCauseCategory.CODE:
        if any("refactor" in fix.description.lower() for fix in diagnosis.suggested_fixes):
            return SuggestedWorkflow.REFACTOR
        return SuggestedWorkflow.BUG_FIX
    if category == RootCauseCategory.EXTERNAL:
        return SuggestedWorkflow.MANUAL_REVIEW
    return SuggestedWorkflow.INVESTIGATION


_EVIDENCE_SID_KEYS = ("sid", "resource_sid", "resourceSid", "call_sid", "callSid", "message_sid", "messageSid")


def extract_resource_ids(diagnosis: Diagnosis) -> List[str]:
    ids: List[str] = []
    if diagnosis.validation_result.resource_sid:
        ids.append(diagnosis.validation_result.resource_sid)
    for evidence in diagnosis.evidence:
        if not isinstance(evidence.data, dict):
            continue
        for key in _EVIDENCE_SID_KEYS:
            value = evidence.data.get(key)
            if isinstance(value, str) and value:
                ids.append(value)
    return list(dict.fromkeys(ids))


def format_diagnosis_description(diagnosis: Diagnosis) -> str:
    root = diagnosis.root_cause
    lines = [
        f"**Root Cause**: {root.description}",
        f"**Category**: {root.category.value}",
        f"**Confidence**: {root.confidence * 100:.0f}%",
        "",
        "**Evidence**:",
        *(f"- {item.source}: {item.relevance}" for item in diagnosis.evidence),
        "",
        "**Suggested Fixes**:",
        *(
            f"- [{fix.action_type.value}] {fix.description} "
            f"(confidence: {fix.confidence * 100:.0f}%, automated: {str(fix.automated).lower()})"
            for fix in diagnosis.suggested_fixes
        ),
    ]
    if diagnosis.is_known_pattern:
        lines.extend(
            ["", f"**Note**: This is a known pattern (seen {diagnosis.previous_occurrences} times before)"]
        )
    return "\n".join(lines)


def work_from_validation(
    diagnosis: Diagnosis,
    source: WorkSource = WorkSource.VALIDATION_FAILURE,
) -> DiscoveredWork:
    workflow = suggest_workflow(diagnosis)
    return DiscoveredWork(
        id=f"work-{diagnosis.pattern_id}-{_timestamp_ms()}",
        source=source,
        priority=determine_priority(diagnosis),
        tier=determine_automation_tier(diagnosis),
        suggested_workflow=workflow,
        summary=diagnosis.summary,
        description=format_diagnosis_description(diagnosis),
        diagnosis=diagnosis,
        resource_ids=extract_resource_ids(diagnosis),
        tags=[diagnosis.root_cause.category.value, workflow.value],
    )


def _diagnosis_key(diagnosis: Diagnosis) -> str:
    return "|".join(
        (diagnosis.pattern_id, diagnosis.validation_result.resource_sid, diagnosis.timestamp.isoformat())
    )


DiagnosisFetcher = Callable[[], Awaitable[Sequence[Diagnosis | Dict[str, Any]]]]


class ValidationFailureSource:
    """
    Produces work from diagnosed validation failures.

    Diagnoses arrive either pushed through `submit()` (from a validator's
    failure callback) or pulled from an optional async `fetch_diagnoses()`.
    The same diagnosis (pattern, resource and timestamp) is only turned into
    work once.
    """

    name = "validation-failures"
    source = WorkSource.VALIDATION_FAILURE

    def __init__(
        self,
        fetch_diagnoses: DiagnosisFetcher | None = None,
        *,
        enabled: bool = True,
        seen_capacity: int = 500,
    ) -> None:
        self._fetch_diagnoses = fetch_diagnoses
        self.enabled = enabled
        self._pending: List[Diagnosis] = []
        self._seen = RecentIds(seen_capacity)

    def submit(self, diagnosis: Diagnosis | Dict[str, Any]) -> Diagnosis:
        """Queue a diagnosis for the next poll. Raises ValidationError if malformed."""
        parsed = diagnosis if isinstance(diagnosis, Diagnosis) else Diagnosis.model_validate(diagnosis)
        self._pending.append(parsed)
        return parsed

    async def poll(self) -> List[DiscoveredWork]:
        candidates: List[Diagnosis | Dict[str, Any]] = list(self._pending)
        self._pending.clear()
        if self._fetch_diagnoses is not None:
            try:
                candidates.extend(await self._fetch_diagnoses())
            except Exception as exc:  # noqa: BLE001 - diagnostic backend failures are retried next cycle
                LOGGER.warning("Diagnosis fetch failed: %s", exc)

        discovered: List[DiscoveredWork] = []
        for raw in candidates:
            try:
                diagnosis = raw if isinstance(raw, Diagnosis) else Diagnosis.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Skipping malformed diagnosis: %s", exc)
                continue
            if not self._seen.add(_diagnosis_key(diagnosis)):
                continue
            discovered.append(work_from_validation(diagnosis))
        return discovered


# --------------------------------------------------------------------------
# Error-monitoring alerts
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class AlertClassification:
    priority: WorkPriority
    tier: int
    workflow: SuggestedWorkflow
    category: str


_CODE_RANGES: Sequence[tuple[int, int, AlertClassification]] = (
    (11000, 12000, AlertClassification(WorkPriority.HIGH, 2, SuggestedWorkflow.BUG_FIX, "webhook")),
    (12000, 13000, AlertClassification(WorkPriority.HIGH, 2, SuggestedWorkflow.BUG_FIX, "markup")),
    (21000, 22000, AlertClassification(WorkPriority.MEDIUM, 3, SuggestedWorkflow.INVESTIGATION, "api")),
    (30000, 31000, AlertClassification(WorkPriority.MEDIUM, 4, SuggestedWorkflow.MANUAL_REVIEW, "messaging")),
    (82000, 83000, AlertClassification(WorkPriority.CRITICAL, 1, SuggestedWorkflow.BUG_FIX, "auth")),
)
_UNKNOWN = AlertClassification(WorkPriority.MEDIUM, 3, SuggestedWorkflow.INVESTIGATION, "unknown")


def classify_alert_code(error_code: str | int) -> AlertClassification:
    try:
        code = int(str(error_code).strip())
    except ValueError:
        return _UNKNOWN
    for low, high, classification in _CODE_RANGES:
        if low <= code < high:
            return classification
    return _UNKNOWN


class Alert(BaseModel):
    sid: str
    error_code: str
    alert_text: str = ""
    resource_id: str = ""
    log_level: str = "error"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def alert_to_work(alert: Alert) -> DiscoveredWork:
    classification = classify_alert_code(alert.error_code)
    description = "\n".join(
        [
            f"**Error Code**: {alert.error_code}",
            f"**Alert**: {alert.alert_text}",
            f"**Category**: {classification.category}",
            f"**Resource**: {alert.resource_id}",
            f"**Level**: {alert.log_level}",
            f"**Created**: {alert.created_at.isoformat()}",
        ]
    )
    return DiscoveredWork(
        id=f"alert-{alert.sid}-{_timestamp_ms()}",
        discovered_at=alert.created_at,
        source=WorkSource.DEBUGGER_ALERT,
        priority=classification.priority,
        tier=classification.tier,
        suggested_workflow=classification.workflow,
        summary=f"Error {alert.error_code}: {alert.alert_text}",
        description=description,
        resource_ids=[alert.resource_id] if alert.resource_id else [],
        tags=[classification.category, f"error-{alert.error_code}"],
    )


AlertFetcher = Callable[[int], Awaitable[Sequence[Alert | Dict[str, Any]]]]


class AlertSource:
    """
    Polls an error-monitoring API through `fetch_alerts(limit)`.

    Alerts are deduplicated by `sid` across poll cycles. Only the most recent
    `seen_capacity` sids are remembered (ten fetches worth by default), which
    covers anything the API can still return.
    """

    name = "debugger-alerts"
    source = WorkSource.DEBUGGER_ALERT

    def __init__(
        self,
        fetch_alerts: AlertFetcher,
        *,
        limit: int = 20,
        enabled: bool = True,
        seen_capacity: int | None = None,
    ) -> None:
        self._fetch_alerts = fetch_alerts
        self.limit = limit
        self.enabled = enabled
        self._seen = RecentIds(seen_capacity or max(limit, 1) * 10)

    async def poll(self) -> List[DiscoveredWork]:
        try:
            raw_alerts = await self._fetch_alerts(self.limit)
        except Exception as exc:  # noqa: BLE001 - remote API failures are retried next cycle
            LOGGER.warning("Alert fetch failed: %s", exc)
            return []

        discovered: List[DiscoveredWork] = []
        for raw in raw_alerts:
            try:
                alert = raw if isinstance(raw, Alert) else Alert.model_validate(raw)
            except ValidationError as exc:
                LOGGER.warning("Skipping malformed alert: %s", exc)
                continue
            if not self._seen.add(alert.sid):
                continue
            discovered.append(alert_to_work(alert))
        return discovered


__all__ = [
    "WorkSourceProvider",
    "FileQueueSource",
    "ManualQueueItem",
    "manual_item_to_work",
    "enqueue_manual_work",
    "ValidationFailureSource",
    "determine_priority",
    "determine_automation_tier",
    "suggest_workflow",
    "extract_resource_ids",
    "work_from_validation",
    "RecentIds",
    "AlertSource",
    "Alert",
    "AlertClassification",
    "classify_alert_code",
    "alert_to_work",
    "MANUAL_QUEUE_FILE_NAME",
]
