from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest

from autoworker_contracts import Diagnosis, SuggestedWorkflow, WorkPriority, WorkSource
from autoworker_runtime.sources import (
    MANUAL_QUEUE_FILE_NAME,
    Alert,
    AlertSource,
    FileQueueSource,
    RecentIds,
    ValidationFailureSource,
    WorkSourceProvider,
    alert_to_work,
    classify_alert_code,
    determine_automation_tier,
    determine_priority,
    enqueue_manual_work,
    suggest_workflow,
    work_from_validation,
)


def test_file_queue_source_consumes_entries(tmp_path) -> None:
    enqueue_manual_work(tmp_path, "Fix login redirect", priority=WorkPriority.HIGH, item_id="one")
    enqueue_manual_work(tmp_path, "Review billing", workflow=SuggestedWorkflow.MANUAL_REVIEW, item_id="two")
    source = FileQueueSource(tmp_path)

    first = asyncio.run(source.poll())
    second = asyncio.run(source.poll())

    assert second == []
    by_summary = {item.summary: item for item in first}
    login = by_summary["Fix login redirect"]
    assert login.id.startswith("manual-one-")
    assert login.source == WorkSource.USER_REQUEST
    assert login.priority == WorkPriority.HIGH
    assert login.tier == 2
    assert login.tags == ["manual", "bug-fix"]
    review = by_summary["Review billing"]
    assert review.tier == 4
    assert review.priority == WorkPriority.MEDIUM

    stored = json.loads((tmp_path / MANUAL_QUEUE_FILE_NAME).read_text())
    assert all(entry["consumed"] for entry in stored["items"])


def test_file_queue_source_missing_or_corrupt_file(tmp_path) -> None:
    source = FileQueueSource(tmp_path)
    assert asyncio.run(source.poll()) == []

    (tmp_path / MANUAL_QUEUE_FILE_NAME).write_text("[oops")
    assert asyncio.run(source.poll()) == []


def test_file_queue_source_skips_malformed_entries(tmp_path) -> None:
    (tmp_path / MANUAL_QUEUE_FILE_NAME).write_text(
        json.dumps({"items": [{"id": "a"}, {"id": "b", "description": "ok"}]})
    )

    items = asyncio.run(FileQueueSource(tmp_path).poll())

    assert [item.summary for item in items] == ["ok"]


def test_sources_satisfy_provider_protocol(tmp_path) -> None:
    async def fetch(limit):
        return []

    assert isinstance(FileQueueSource(tmp_path), WorkSourceProvider)
    assert isinstance(AlertSource(fetch), WorkSourceProvider)


def test_classify_alert_code_ranges() -> None:
    assert classify_alert_code("11200").priority == WorkPriority.HIGH
    assert classify_alert_code(12100).category == "markup"
    assert classify_alert_code("21211").workflow == SuggestedWorkflow.INVESTIGATION
    assert classify_alert_code("30003").workflow == SuggestedWorkflow.MANUAL_REVIEW
    critical = classify_alert_code("82002")
    assert (critical.priority, critical.tier) == (WorkPriority.CRITICAL, 1)
    assert classify_alert_code("99999").category == "unknown"
    assert classify_alert_code("not-a-code").category == "unknown"


def test_alert_to_work_maps_fields() -> None:
    alert = Alert(sid="NO123", error_code="11200", alert_text="HTTP retrieval failure", resource_id="CA1")

    work = alert_to_work(alert)

    assert work.id.startswith("alert-NO123-")
    assert work.source == WorkSource.DEBUGGER_ALERT
    assert work.tier == 2
    assert work.summary == "Error 11200: HTTP retrieval failure"
    assert work.resource_ids == ["CA1"]
    assert "**Category**: webhook" in work.description
    assert work.tags == ["webhook", "error-11200"]


def test_alert_source_deduplicates_by_sid() -> None:
    batches = [
        [{"sid": "A", "error_code": "82002"}, {"sid": "B", "error_code": "21211"}],
        [{"sid": "A", "error_code": "82002"}, {"sid": "C", "error_code": "11200"}],
    ]
    limits = []

    async def fetch(limit):
        limits.append(limit)
        return batches.pop(0)

    source = AlertSource(fetch, limit=5)
    first = asyncio.run(source.poll())
    second = asyncio.run(source.poll())

    assert len(first) == 2
    assert [item.summary.split(":")[0] for item in second] == ["Error 11200"]
    assert limits == [5, 5]


def test_alert_source_fetch_failure_returns_nothing() -> None:
    async def fetch(limit):
        raise ConnectionError("api down")

    assert asyncio.run(AlertSource(fetch).poll()) == []


def test_alert_source_forgets_oldest_sids_beyond_capacity() -> None:
    batches = [
        [{"sid": "A", "error_code": "11200"}, {"sid": "B", "error_code": "11200"}],
        [{"sid": "C", "error_code": "11200"}],
        [{"sid": "A", "error_code": "11200"}, {"sid": "C", "error_code": "11200"}],
    ]

    async def fetch(limit):
        return batches.pop(0)

    source = AlertSource(fetch, limit=2, seen_capacity=2)
    asyncio.run(source.poll())
    asyncio.run(source.poll())
    third = asyncio.run(source.poll())

    assert [item.summary for item in third] == ["Error 11200: "]
    assert len(source._seen) == 2


def test_recent_ids_is_bounded_and_refreshes_on_repeat() -> None:
    seen = RecentIds(2)

    assert seen.add("a") is True
    assert seen.add("b") is True
    assert seen.add("a") is False
    seen.add("c")

    assert "a" in seen
    assert "b" not in seen
    assert len(seen) == 2
    with pytest.raises(ValueError):
        RecentIds(0)


def _diagnosis(category: str, confidence: float, fixes=(), **extra) -> Diagnosis:
    payload = {
        "pattern_id": extra.pop("pattern_id", "p-1"),
        "summary": extra.pop("summary", "Webhook returned 500"),
        "root_cause": {"category": category, "description": "handler crashed", "confidence": confidence},
        "suggested_fixes": list(fixes),
    }
    payload.update(extra)
    return Diagnosis.model_validate(payload)


_AUTOMATED_FIX = {"description": "Set the webhook URL", "action_type": "config", "confidence": 0.9, "automated": True}
_MANUAL_FIX = {"description": "Inspect carrier logs", "action_type": "escalate", "confidence": 0.9, "automated": False}


@pytest.mark.parametrize(
    ("category", "confidence", "expected"),
    [
        ("configuration", 0.9, WorkPriority.CRITICAL),
        ("configuration", 0.8, WorkPriority.LOW),
        ("code", 0.1, WorkPriority.HIGH),
        ("external", 0.9, WorkPriority.MEDIUM),
        ("timing", 0.9, WorkPriority.MEDIUM),
        ("environment", 0.9, WorkPriority.LOW),
        ("unknown", 0.9, WorkPriority.LOW),
    ],
)
def test_determine_priority(category, confidence, expected) -> None:
    assert determine_priority(_diagnosis(category, confidence)) == expected


@pytest.mark.parametrize(
    ("category", "confidence", "fixes", "expected"),
    [
        ("configuration", 0.9, [_AUTOMATED_FIX], 1),
        ("configuration", 0.8, [_AUTOMATED_FIX], 3),
        ("code", 0.7, [_AUTOMATED_FIX], 2),
        ("code", 0.6, [_AUTOMATED_FIX], 3),
        ("code", 0.9, [_MANUAL_FIX], 3),
        ("code", 0.9, [dict(_AUTOMATED_FIX, confidence=0.7)], 3),
        ("external", 0.5, [_MANUAL_FIX], 4),
        ("unknown", 0.9, [], 4),
    ],
)
def test_determine_automation_tier(category, confidence, fixes, expected) -> None:
    assert determine_automation_tier(_diagnosis(category, confidence, fixes)) == expected


@pytest.mark.parametrize(
    ("category", "fixes", "expected"),
    [
        ("configuration", [], SuggestedWorkflow.BUG_FIX),
        ("code", [{"description": "REFACTOR the retry loop"}], SuggestedWorkflow.REFACTOR),
        ("code", [{"description": "Guard against None"}], SuggestedWorkflow.BUG_FIX),
        ("timing", [], SuggestedWorkflow.INVESTIGATION),
        ("external", [], SuggestedWorkflow.MANUAL_REVIEW),
        ("environment", [], SuggestedWorkflow.INVESTIGATION),
        ("unknown", [], SuggestedWorkflow.INVESTIGATION),
    ],
)
def test_suggest_workflow(category, fixes, expected) -> None:
    assert suggest_workflow(_diagnosis(category, 0.9, fixes)) == expected


def test_work_from_validation_maps_fields() -> None:
    diagnosis = _diagnosis(
        "configuration",
        0.95,
        [_AUTOMATED_FIX],
        pattern_id="missing-webhook",
        evidence=[
            {"source": "call-log", "data": {"callSid": "CA1", "sid": "PN1"}, "relevance": "primary"},
            {"source": "notes", "data": "free text", "relevance": "supporting"},
        ],
        validation_result={"resource_sid": "PN1", "resource_type": "phone-number"},
        is_known_pattern=True,
        previous_occurrences=3,
    )

    work = work_from_validation(diagnosis)

    assert work.id.startswith("work-missing-webhook-")
    assert work.source == WorkSource.VALIDATION_FAILURE
    assert (work.priority, work.tier) == (WorkPriority.CRITICAL, 1)
    assert work.suggested_workflow == SuggestedWorkflow.BUG_FIX
    assert work.summary == "Webhook returned 500"
    assert work.resource_ids == ["PN1", "CA1"]
    assert work.tags == ["configuration", "bug-fix"]
    assert work.diagnosis == diagnosis
    assert "**Confidence**: 95%" in work.description
    assert "- call-log: primary" in work.description
    assert "- [config] Set the webhook URL (confidence: 90%, automated: true)" in work.description
    assert work.description.endswith("(seen 3 times before)")


def test_validation_source_turns_submitted_diagnoses_into_work_once() -> None:
    source = ValidationFailureSource()
    stamp = datetime(2025, 3, 1, tzinfo=timezone.utc)
    source.submit(_diagnosis("code", 0.7, [_AUTOMATED_FIX], timestamp=stamp))
    source.submit(_diagnosis("code", 0.7, [_AUTOMATED_FIX], timestamp=stamp))

    first = asyncio.run(source.poll())
    source.submit(_diagnosis("code", 0.7, [_AUTOMATED_FIX], timestamp=stamp))
    second = asyncio.run(source.poll())

    assert len(first) == 1
    assert first[0].tier == 2
    assert second == []
    assert isinstance(source, WorkSourceProvider)


def test_validation_source_pulls_from_fetcher_and_skips_malformed() -> None:
    async def fetch():
        return [
            {"pattern_id": "slow-callback", "summary": "Callback timed out", "root_cause": {"category": "timing"}},
            {"summary": "no pattern id"},
        ]

    items = asyncio.run(ValidationFailureSource(fetch).poll())

    assert [item.summary for item in items] == ["Callback timed out"]
    assert items[0].suggested_workflow == SuggestedWorkflow.INVESTIGATION


def test_validation_source_fetch_failure_keeps_submitted_work() -> None:
    async def fetch():
        raise ConnectionError("diagnostics down")

    source = ValidationFailureSource(fetch)
    source.submit(_diagnosis("external", 0.9))

    items = asyncio.run(source.poll())

    assert [item.suggested_workflow for item in items] == [SuggestedWorkflow.MANUAL_REVIEW]
