"""
Two-layer context-size control for long-running agent conversations.

Layer 1 truncates each tool result before it re-enters the conversation,
using a strategy suited to the tool family:

- shell output keeps the first and last lines, where errors and test
  summaries usually live;
- file reads keep the head and tail of the text;
- search output keeps the earliest whole lines that fit;
- directory listings keep a fixed number of paths;
- anything else is cut at a character cap.

Every strategy appends a marker of the form ``[TRUNCATED: N <unit> omitted]``
that `parse_omitted_count` can read back.

Layer 2 compacts the whole conversation once accumulated input tokens reach
a threshold. The initial prompt and the most recent turn-pairs are kept; the
turns in between are replaced by a summary appended to the initial prompt.
A turn-pair is one `AIMessage` together with the tool results and user
messages that answer it, so a tool call is never separated from its result.
Summarization is pluggable through `ContextSummarizer`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from .config import ContextManagerConfig, ToolFamily

LOGGER = logging.getLogger(__name__)

_MIDDLE_MARKER_RESERVE = 60
_SEARCH_MARKER_RESERVE = 80
_OMITTED_PATTERN = re.compile(r"\[TRUNCATED: (\d+) [a-z]+ omitted\]")


@dataclass(slots=True)
class TruncationResult:
    output: str
    was_truncated: bool
    original_length: int
    truncated_length: int


@dataclass(slots=True)
class CompactionResult:
    messages: List[BaseMessage]
    turn_pairs_removed: int
    summary: str


def _marker(count: int, unit: str) -> str:
    return f"[TRUNCATED: {count} {unit} omitted]"


def _unchanged(output: str) -> TruncationResult:
    return TruncationResult(output, False, len(output), len(output))


def _truncated(output: str, original_length: int) -> TruncationResult:
    return TruncationResult(output, True, original_length, len(output))


def parse_omitted_count(text: str) -> Optional[int]:
    """Return N from the last truncation marker in `text`, if any."""
    matches = _OMITTED_PATTERN.findall(text or "")
    return int(matches[-1]) if matches else None


# ----------------------------------------------------------------------------
# Layer 1: tool output truncation
# ----------------------------------------------------------------------------


def truncate_middle(output: str, max_chars: int, original_length: int | None = None) -> TruncationResult:
    original = len(output) if original_length is None else original_length
    if len(output) <= max_chars:
        return _unchanged(output)
    half = max((max_chars - _MIDDLE_MARKER_RESERVE) // 2, 0)
    head = output[:half]
    tail = output[-half:] if half else ""
    omitted = len(output) - half * 2
    return _truncated(f"{head}\n\n{_marker(omitted, 'characters')}\n\n{tail}", original)


def truncate_shell_output(
    output: str,
    max_chars: int,
    *,
    head_lines: int = 150,
    tail_lines: int = 150,
) -> TruncationResult:
    if len(output) <= max_chars:
        return _unchanged(output)
    lines = output.split("\n")
    if len(lines) <= head_lines + tail_lines:
        # few but very long lines
        return truncate_middle(output, max_chars)
    head = "\n".join(lines[:head_lines])
    tail = "\n".join(lines[-tail_lines:]) if tail_lines else ""
    omitted = len(lines) - head_lines - tail_lines
    truncated = f"{head}\n\n{_marker(omitted, 'lines')}\n\n{tail}"
    if len(truncated) > max_chars:
        return truncate_middle(truncated, max_chars, len(output))
    return _truncated(truncated, len(output))


def truncate_search_output(output: str, max_chars: int) -> TruncationResult:
    if len(output) <= max_chars:
        return _unchanged(output)
    lines = output.split("\n")
    budget = max_chars - _SEARCH_MARKER_RESERVE
    used = 0
    kept = 0
    for line in lines:
        if used + len(line) + 1 > budget:
            break
        used += len(line) + 1
        kept += 1
    omitted = len(lines) - kept
    body = "\n".join(lines[:kept])
    return _truncated(f"{body}\n\n{_marker(omitted, 'matches')}", len(output))


def truncate_listing(output: str, max_paths: int) -> TruncationResult:
    paths = [line for line in output.split("\n") if line]
    if len(paths) <= max_paths:
        return _unchanged(output)
    kept = "\n".join(paths[:max_paths])
    omitted = len(paths) - max_paths
    return _truncated(f"{kept}\n\n{_marker(omitted, 'paths')}", len(output))


def truncate_simple(output: str, max_chars: int) -> TruncationResult:
    if len(output) <= max_chars:
        return _unchanged(output)
    omitted = len(output) - max_chars
    return _truncated(f"{output[:max_chars]}\n\n{_marker(omitted, 'characters')}", len(output))


def truncate_tool_output(
    tool_name: str,
    output: str,
    config: ContextManagerConfig | None = None,
) -> TruncationResult:
    cfg = config or ContextManagerConfig()
    family = cfg.family_for(tool_name)
    if family == ToolFamily.SHELL:
        return truncate_shell_output(
            output,
            cfg.max_shell_output_chars,
            head_lines=cfg.shell_head_lines,
            tail_lines=cfg.shell_tail_lines,
        )
    if family == ToolFamily.FILE_READ:
        return truncate_middle(output, cfg.max_file_read_chars)
    if family == ToolFamily.SEARCH:
        return truncate_search_output(output, cfg.max_search_output_chars)
    if family == ToolFamily.LISTING:
        return truncate_listing(output, cfg.max_listing_paths)
    return truncate_simple(output, cfg.max_default_output_chars)


def truncate_tool_message(message: ToolMessage, config: ContextManagerConfig | None = None) -> ToolMessage:
    """Apply Layer 1 to a tool result message; non-string content is left alone."""
    if not isinstance(message.content, str):
        return message
    result = truncate_tool_output(message.name or "", message.content, config)
    if not result.was_truncated:
        return message
    LOGGER.debug(
        "Truncated %s output from %d to %d chars",
        message.name,
        result.original_length,
        result.truncated_length,
    )
    return message.model_copy(update={"content": result.output})


# ----------------------------------------------------------------------------
# Layer 2: conversation compaction
# ----------------------------------------------------------------------------


class ContextSummarizer(Protocol):
    def summarize(self, evicted: Sequence[BaseMessage]) -> str:
        ...


_PYTEST_STATUS = re.compile(
    r"\b\d+ (?:passed|failed)(?:, \d+ (?:passed|failed|skipped|errors?|xfailed|xpassed|warnings?))*"
    r"(?: in [\d.]+s)?"
)
_JEST_STATUS = re.compile(r"Tests:\s*[^\n]*\b(?:passed|failed)\b[^\n]*")
_PATH_PATTERN = re.compile(r"(?:/[\w.-]+)+\.(?:py|ts|js|tsx|jsx|json|md|toml|ya?ml)\b")
_PATH_ARG_TOOLS = {"Read", "Write", "Edit", "read_file", "write_file", "edit_file"}


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content or []:
        if isinstance(block, dict):
            parts.append(str(block.get("text", "")))
        else:
            parts.append(str(block))
    return "\n".join(parts)


def _shorten_path(path: str) -> str:
    parts = path.split("/")
    if len(parts) <= 3:
        return path
    return ".../" + "/".join(parts[-3:])


def _clip(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit] + "..."


def _first_arg(tool_name: str, args: dict) -> str:
    if tool_name in _PATH_ARG_TOOLS:
        path = args.get("file_path") or args.get("path")
        return _shorten_path(path) if isinstance(path, str) else ""
    if tool_name in {"Bash", "bash", "shell"}:
        command = args.get("command")
        return _clip(command, 60) if isinstance(command, str) else ""
    if tool_name in {"Grep", "grep", "search"}:
        pattern = args.get("pattern")
        return f'"{_clip(pattern, 30)}"' if isinstance(pattern, str) else ""
    if tool_name in {"Glob", "glob"}:
        pattern = args.get("pattern")
        return pattern if isinstance(pattern, str) else ""
    return ""


class HeuristicSummarizer:
    """
    Summarizes evicted turns without a model: one line per turn naming the
    tools called and their main argument, the file paths seen, and the last
    test result line observed.
    """

    def __init__(self, *, first_turn_number: int = 2, max_paths_per_message: int = 5) -> None:
        self.first_turn_number = first_turn_number
        self.max_paths_per_message = max_paths_per_message

    def summarize(self, evicted: Sequence[BaseMessage]) -> str:
        lines: List[str] = []
        files: List[str] = []
        test_status = ""
        turn = self.first_turn_number - 1

        for message in evicted:
            if isinstance(message, AIMessage):
                turn += 1
                calls = []
                for call in message.tool_calls or []:
                    name = call.get("name") or "tool"
                    args = call.get("args") or {}
                    arg = _first_arg(name, args)
                    calls.append(f"{name} {arg}" if arg else name)
                    if name in _PATH_ARG_TOOLS:
                        path = args.get("file_path") or args.get("path")
                        if isinstance(path, str) and path not in files:
                            files.append(path)
                if calls:
                    lines.append(f"- Turn {turn}: {', '.join(calls)}")
                continue

            if isinstance(message, ToolMessage):
                text = _message_text(message)
                status = self._test_status(text)
                if status:
                    test_status = status
                for path in _PATH_PATTERN.findall(text)[: self.max_paths_per_message]:
                    if path not in files:
                        files.append(path)

        summary = "## Earlier work:\n" + "\n".join(lines)
        if files:
            summary += f"\nFiles touched: {', '.join(files)}"
        if test_status:
            summary += f"\nTest status: {test_status}"
        return summary

    @staticmethod
    def _test_status(text: str) -> str:
        jest = _JEST_STATUS.findall(text)
        if jest:
            return jest[-1].strip()
        pytest_matches = _PYTEST_STATUS.findall(text)
        if pytest_matches:
            return pytest_matches[-1].strip()
        return ""


def should_compact(input_tokens_used: int, config: ContextManagerConfig | None = None) -> bool:
    cfg = config or ContextManagerConfig()
    return input_tokens_used >= cfg.compaction_threshold_tokens


def _split_initial(messages: Sequence[BaseMessage]) -> Tuple[List[BaseMessage], List[BaseMessage]]:
    """The prefix runs through the first human message (system messages included)."""
    for index, message in enumerate(messages):
        if isinstance(message, HumanMessage):
            return list(messages[: index + 1]), list(messages[index + 1 :])
    return list(messages[:1]), list(messages[1:])


def group_turn_pairs(messages: Iterable[BaseMessage]) -> List[List[BaseMessage]]:
    """
    Group messages into turn-pairs, each starting at an `AIMessage`.

    Messages that precede the first `AIMessage` are attached to the first turn.
    """
    turns: List[List[BaseMessage]] = []
    current: List[BaseMessage] = []
    for message in messages:
        if isinstance(message, AIMessage) and any(isinstance(m, AIMessage) for m in current):
            turns.append(current)
            current = []
        current.append(message)
    if current:
        turns.append(current)
    return turns


def _append_text(message: BaseMessage, text: str) -> BaseMessage:
    content = message.content
    if isinstance(content, str):
        return message.model_copy(update={"content": content + text})
    blocks: List[Any] = list(content or [])
    for index in range(len(blocks) - 1, -1, -1):
        block = blocks[index]
        if isinstance(block, dict) and block.get("type") == "text":
            blocks[index] = {**block, "text": str(block.get("text", "")) + text}
            break
        if isinstance(block, str):
            blocks[index] = block + text
            break
    else:
        blocks.append({"type": "text", "text": text})
    return message.model_copy(update={"content": blocks})


def compact_messages(
    messages: Sequence[BaseMessage],
    config: ContextManagerConfig | None = None,
    *,
    summarizer: ContextSummarizer | None = None,
) -> CompactionResult:
    """
    Evict the turns between the initial prompt and the protected tail.

    A no-op when there are no more turn-pairs than `keep_recent_turn_pairs`.
    """
    cfg = config or ContextManagerConfig()
    keep = max(cfg.keep_recent_turn_pairs, 0)
    prefix, rest = _split_initial(messages)
    turns = group_turn_pairs(rest)

    if not prefix or len(turns) <= keep:
        return CompactionResult(messages=list(messages), turn_pairs_removed=0, summary="")

    split = len(turns) - keep
    evicted_turns, recent_turns = turns[:split], turns[split:]
    evicted = [message for turn in evicted_turns for message in turn]

    strategy = summarizer or HeuristicSummarizer()
    body = strategy.summarize(evicted)
    last_turn = len(evicted_turns) + 1
    summary = f"\n\n[CONTEXT COMPACTED - Turns 2-{last_turn} summarized]\n{body}"

    initial = _append_text(prefix[-1], summary)
    retained = [message for turn in recent_turns for message in turn]
    compacted = [*prefix[:-1], initial, *retained]
    LOGGER.info(
        "Compacted %d turn-pairs (%d -> %d messages)",
        len(evicted_turns),
        len(messages),
        len(compacted),
    )
    return CompactionResult(
        messages=compacted,
        turn_pairs_removed=len(evicted_turns),
        summary=summary,
    )


def estimate_tokens(messages: Sequence[BaseMessage]) -> int:
    """
    Input tokens for a conversation.

    Prefers the provider-reported `input_tokens` on the latest AI message and
    falls back to one token per four characters.
    """
    for message in reversed(messages):
        if isinstance(message, AIMessage) and message.usage_metadata:
            reported = message.usage_metadata.get("input_tokens")
            if reported:
                return int(reported)
    total_chars = sum(len(_message_text(message)) for message in messages)
    return int(total_chars / 4)


class ContextManager:
    """Facade bundling both layers behind one configuration."""

    def __init__(
        self,
        config: ContextManagerConfig | None = None,
        *,
        summarizer: ContextSummarizer | None = None,
    ) -> None:
        self.config = config or ContextManagerConfig()
        self.summarizer = summarizer or HeuristicSummarizer()

    def truncate(self, tool_name: str, output: str) -> TruncationResult:
        return truncate_tool_output(tool_name, output, self.config)

    def truncate_message(self, message: ToolMessage) -> ToolMessage:
        return truncate_tool_message(message, self.config)

    def should_compact(self, input_tokens_used: int) -> bool:
        return should_compact(input_tokens_used, self.config)

    def compact(self, messages: Sequence[BaseMessage]) -> CompactionResult:
        return compact_messages(messages, self.config, summarizer=self.summarizer)

    def estimate_tokens(self, messages: Sequence[BaseMessage]) -> int:
        return estimate_tokens(messages)

    def maybe_compact(
        self,
        messages: Sequence[BaseMessage],
        input_tokens_used: int | None = None,
    ) -> CompactionResult:
        used = self.estimate_tokens(messages) if input_tokens_used is None else input_tokens_used
        if not self.should_compact(used):
            return CompactionResult(messages=list(messages), turn_pairs_removed=0, summary="")
        return self.compact(messages)


__all__ = [
    "ContextManager",
    "ContextSummarizer",
    "HeuristicSummarizer",
    "TruncationResult",
    "CompactionResult",
    "truncate_tool_output",
    "truncate_tool_message",
    "truncate_shell_output",
    "truncate_middle",
    "truncate_search_output",
    "truncate_listing",
    "truncate_simple",
    "parse_omitted_count",
    "should_compact",
    "compact_messages",
    "group_turn_pairs",
    "estimate_tokens",
]
