"""
Stall detection for agents executing a workflow.

The detector consumes one list of `ToolCallRecord` per agent turn and looks
for three patterns, checked in priority order:

- repetition: the same tool with the same input several times in a row;
- oscillation: the tail of the history alternates strictly between two
  different calls for the whole configured window;
- idle: too many turns have passed since a call touched a file.

When a stall is found the caller injects `build_intervention_message()` into
the conversation and calls `record_intervention()`. Once the configured
number of interventions has been sent, `should_hard_stop()` tells the caller
to end the turn loop instead of nudging again.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import deque
from typing import Any, Deque, Iterable, List, Mapping, Optional, Sequence

from langchain_core.messages import AIMessage

from autoworker_contracts import StallEvent, StallType, ToolCallRecord

from .config import StallDetectionConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_FILE_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "write_file", "edit_file", "apply_patch"})

_INTERVENTION_HEADER = "=== STALL DETECTED ===\n\n"
_INTERVENTION_FOOTER = (
    "\n\nIf you cannot make progress, summarize what you have accomplished "
    "and what is blocking you, then stop."
)


def hash_tool_input(tool_input: Mapping[str, Any] | None) -> str:
    """Deterministic digest of a tool input, independent of key order."""
    canonical = json.dumps(
        tool_input or {},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def tool_call_records(
    message: AIMessage,
    file_tools: Iterable[str] = DEFAULT_FILE_TOOLS,
) -> List[ToolCallRecord]:
    """Build stall-detector records from the tool calls on an AI message."""
    writers = set(file_tools)
    records: List[ToolCallRecord] = []
    for call in message.tool_calls or []:
        name = call.get("name") or "unknown"
        records.append(
            ToolCallRecord(
                tool_name=name,
                input_hash=hash_tool_input(call.get("args")),
                had_file_activity=name in writers,
            )
        )
    return records


def detect_repetition(history: Sequence[ToolCallRecord], threshold: int) -> Optional[StallEvent]:
    if threshold < 1 or len(history) < threshold:
        return None
    tail = history[-1]
    tail_key = tail.key()
    count = 0
    for record in reversed(history):
        if record.key() != tail_key:
            break
        count += 1
    if count < threshold:
        return None
    return StallEvent(
        type=StallType.REPETITION,
        description=f"Repeated {tail.tool_name} with identical input {count} times",
        evidence=[
            f"Tool: {tail.tool_name}",
            f"Consecutive identical calls: {count}",
            f"Threshold: {threshold}",
        ],
    )


def detect_oscillation(history: Sequence[ToolCallRecord], window_size: int) -> Optional[StallEvent]:
    """A window shorter than four calls cannot show a meaningful A-B-A-B pattern."""
    if window_size < 4 or len(history) < window_size:
        return None
    window = list(history)[-window_size:]
    first, second = window[0], window[1]
    key_a, key_b = first.key(), second.key()
    if key_a == key_b:
        return None
    for index, record in enumerate(window):
        expected = key_a if index % 2 == 0 else key_b
        if record.key() != expected:
            return None
    return StallEvent(
        type=StallType.OSCILLATION,
        description=f"Oscillating between {first.tool_name} and {second.tool_name}",
        evidence=[
            f"Pattern A: {first.tool_name} (hash: {first.input_hash})",
            f"Pattern B: {second.tool_name} (hash: {second.input_hash})",
            f"Window size: {window_size}",
        ],
    )


def detect_idle(current_turn: int, last_file_activity_turn: int, threshold: int) -> Optional[StallEvent]:
    idle_turns = current_turn - last_file_activity_turn
    if idle_turns < threshold:
        return None
    return StallEvent(
        type=StallType.IDLE,
        description=f"No file changes for {idle_turns} turns",
        evidence=[
            f"Current turn: {current_turn}",
            f"Last file activity: turn {last_file_activity_turn}",
            f"Idle turns: {idle_turns}",
            f"Threshold: {threshold}",
        ],
    )


def build_intervention_message(stall: StallEvent) -> str:
    if stall.type == StallType.REPETITION:
        body = (
            "You are repeating the same tool call with identical input. "
            f"{stall.description}. "
            "Try a different approach or different input."
        )
    elif stall.type == StallType.OSCILLATION:
        body = (
            "You are oscillating between two actions without making progress. "
            f"{stall.description}. "
            "Step back, reassess your approach, and try a different strategy."
        )
    else:
        body = (
            "You have not created or modified any files for an extended period. "
            f"{stall.description}. "
            "If you are researching, start writing code. "
            "If you are stuck, explain what is blocking you."
        )
    return _INTERVENTION_HEADER + body + _INTERVENTION_FOOTER


class StallDetector:
    """Stateful tracker over an agent's tool-call history."""

    def __init__(self, config: StallDetectionConfig | None = None) -> None:
        self.config = config or StallDetectionConfig()
        self._history: Deque[ToolCallRecord] = deque(maxlen=max(self.config.history_limit, 1))
        self._current_turn = 0
        self._last_file_activity_turn = 0
        self._intervention_count = 0

    @property
    def current_turn(self) -> int:
        return self._current_turn

    @property
    def history(self) -> List[ToolCallRecord]:
        return list(self._history)

    def record_turn(self, calls: Iterable[ToolCallRecord]) -> None:
        self._current_turn += 1
        for call in calls:
            self._history.append(call)
            if call.had_file_activity:
                self._last_file_activity_turn = self._current_turn

    def detect_stall(self) -> Optional[StallEvent]:
        if not self.config.enabled:
            return None
        history = self._history
        return (
            detect_repetition(history, self.config.repetition_threshold)
            or detect_oscillation(history, self.config.oscillation_window_size)
            or detect_idle(
                self._current_turn,
                self._last_file_activity_turn,
                self.config.idle_turn_threshold,
            )
        )

    def record_intervention(self) -> None:
        self._intervention_count += 1

    def intervene(self) -> Optional[str]:
        """
        Detect a stall and, if found, count an intervention and return the
        message to inject into the conversation.
        """
        stall = self.detect_stall()
        if stall is None:
            return None
        self.record_intervention()
        LOGGER.warning(
            "Stall detected (%s): %s [intervention %d/%d]",
            stall.type.value,
            stall.description,
            self._intervention_count,
            self.config.max_interventions,
        )
        return build_intervention_message(stall)

    def should_hard_stop(self) -> bool:
        return self._intervention_count >= self.config.max_interventions

    def intervention_count(self) -> int:
        return self._intervention_count

    def reset(self) -> None:
        self._history.clear()
        self._current_turn = 0
        self._last_file_activity_turn = 0
        self._intervention_count = 0


__all__ = [
    "StallDetector",
    "hash_tool_input",
    "tool_call_records",
    "detect_repetition",
    "detect_oscillation",
    "detect_idle",
    "build_intervention_message",
    "DEFAULT_FILE_TOOLS",
]
