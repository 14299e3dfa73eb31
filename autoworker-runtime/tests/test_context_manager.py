from __future__ import annotations

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from autoworker_runtime.config import ContextManagerConfig
from autoworker_runtime.context_manager import (
    ContextManager,
    compact_messages,
    estimate_tokens,
    group_turn_pairs,
    parse_omitted_count,
    should_compact,
    truncate_tool_message,
    truncate_tool_output,
)


def _turn(index: int, tool: str = "Read", args: dict | None = None, result: str = "ok"):
    call_id = f"call-{index}"
    ai = AIMessage(
        content=f"step {index}",
        tool_calls=[{"name": tool, "args": args or {"file_path": f"/repo/src/mod{index}.py"}, "id": call_id}],
    )
    return [ai, ToolMessage(content=result, tool_call_id=call_id, name=tool)]


def _conversation(turns: int):
    messages = [SystemMessage(content="system"), HumanMessage(content="Fix the bug")]
    for index in range(turns):
        messages.extend(_turn(index))
    return messages


def test_short_output_is_untouched() -> None:
    result = truncate_tool_output("Bash", "hello")

    assert not result.was_truncated
    assert result.output == "hello"


def test_shell_output_keeps_head_and_tail_lines() -> None:
    config = ContextManagerConfig(max_shell_output_chars=2_000, shell_head_lines=5, shell_tail_lines=5)
    output = "\n".join(f"line {index}" for index in range(500))

    result = truncate_tool_output("Bash", output, config)

    assert result.was_truncated
    assert result.output.startswith("line 0\n")
    assert result.output.endswith("line 499")
    assert parse_omitted_count(result.output) == 490
    assert result.original_length == len(output)
    assert result.truncated_length == len(result.output)


def test_shell_output_with_few_long_lines_truncates_middle() -> None:
    config = ContextManagerConfig(max_shell_output_chars=1_000)
    output = "x" * 5_000

    result = truncate_tool_output("Bash", output, config)

    assert result.was_truncated
    assert len(result.output) <= 1_000
    assert "characters omitted" in result.output


def test_file_read_keeps_head_and_tail_chars() -> None:
    config = ContextManagerConfig(max_file_read_chars=260)
    output = "A" * 500 + "B" * 500

    result = truncate_tool_output("Read", output, config)

    half = (260 - 60) // 2
    assert result.output.startswith("A" * half)
    assert result.output.endswith("B" * half)
    assert parse_omitted_count(result.output) == 1_000 - 2 * half


def test_search_output_keeps_whole_lines() -> None:
    config = ContextManagerConfig(max_search_output_chars=300)
    output = "\n".join(f"src/file{index}.py:10: match" for index in range(100))

    result = truncate_tool_output("Grep", output, config)

    assert result.was_truncated
    kept = [line for line in result.output.split("\n") if line.startswith("src/")]
    assert all(line.endswith(": match") for line in kept)
    assert parse_omitted_count(result.output) == 100 - len(kept)
    assert "matches omitted" in result.output


def test_listing_caps_path_count() -> None:
    config = ContextManagerConfig(max_listing_paths=10)
    output = "\n".join(f"src/file{index}.py" for index in range(25))

    result = truncate_tool_output("Glob", output, config)

    assert result.output.count("src/file") == 10
    assert parse_omitted_count(result.output) == 15


def test_unknown_tool_uses_simple_cap() -> None:
    config = ContextManagerConfig(max_default_output_chars=100)

    result = truncate_tool_output("WebFetch", "z" * 250, config)

    assert result.output.startswith("z" * 100)
    assert parse_omitted_count(result.output) == 150


def test_parse_omitted_count_without_marker() -> None:
    assert parse_omitted_count("plain text") is None


def test_truncate_tool_message_preserves_metadata() -> None:
    config = ContextManagerConfig(max_default_output_chars=10)
    message = ToolMessage(content="y" * 50, tool_call_id="abc", name="Custom")

    truncated = truncate_tool_message(message, config)

    assert truncated.tool_call_id == "abc"
    assert truncated.name == "Custom"
    assert parse_omitted_count(truncated.content) == 40
    assert message.content == "y" * 50


def test_should_compact_threshold() -> None:
    config = ContextManagerConfig(compaction_threshold_tokens=1_000)

    assert not should_compact(999, config)
    assert should_compact(1_000, config)


def test_group_turn_pairs_keeps_tool_results_with_calls() -> None:
    messages = _conversation(3)[2:]

    turns = group_turn_pairs(messages)

    assert len(turns) == 3
    for turn in turns:
        assert isinstance(turn[0], AIMessage)
        assert isinstance(turn[1], ToolMessage)
        assert turn[1].tool_call_id == turn[0].tool_calls[0]["id"]


def test_compaction_noop_when_few_turns() -> None:
    messages = _conversation(3)
    config = ContextManagerConfig(keep_recent_turn_pairs=3)

    result = compact_messages(messages, config)

    assert result.turn_pairs_removed == 0
    assert result.messages == messages


def test_compaction_keeps_initial_prompt_and_recent_turns() -> None:
    messages = _conversation(10)
    config = ContextManagerConfig(keep_recent_turn_pairs=3)

    result = compact_messages(messages, config)

    assert result.turn_pairs_removed == 7
    assert isinstance(result.messages[0], SystemMessage)
    initial = result.messages[1]
    assert isinstance(initial, HumanMessage)
    assert initial.content.startswith("Fix the bug")
    assert "[CONTEXT COMPACTED - Turns 2-8 summarized]" in initial.content
    assert "- Turn 2: Read" in initial.content
    assert "Files touched:" in initial.content
    retained = result.messages[2:]
    assert len(retained) == 6
    assert retained[0].content == "step 7"
    assert sum(isinstance(message, ToolMessage) for message in retained) == 3


def test_compaction_summary_reports_last_test_status() -> None:
    messages = [HumanMessage(content="Make tests pass")]
    messages.extend(_turn(0, tool="Bash", args={"command": "pytest"}, result="1 failed, 3 passed in 0.5s"))
    messages.extend(_turn(1, tool="Bash", args={"command": "pytest"}, result="4 passed in 0.4s"))
    messages.extend(_turn(2))

    result = compact_messages(messages, ContextManagerConfig(keep_recent_turn_pairs=1))

    assert "Test status: 4 passed in 0.4s" in result.summary


def test_compaction_uses_custom_summarizer() -> None:
    class _Summarizer:
        def __init__(self) -> None:
            self.seen = 0

        def summarize(self, evicted):
            self.seen = len(evicted)
            return "custom summary"

    summarizer = _Summarizer()
    result = compact_messages(
        _conversation(5),
        ContextManagerConfig(keep_recent_turn_pairs=2),
        summarizer=summarizer,
    )

    assert summarizer.seen == 6
    assert result.summary.endswith("custom summary")


def test_compaction_appends_to_block_content() -> None:
    messages = [HumanMessage(content=[{"type": "text", "text": "Start"}])]
    for index in range(4):
        messages.extend(_turn(index))

    result = compact_messages(messages, ContextManagerConfig(keep_recent_turn_pairs=1))

    blocks = result.messages[0].content
    assert blocks[0]["text"].startswith("Start")
    assert "CONTEXT COMPACTED" in blocks[0]["text"]


def test_estimate_tokens_prefers_reported_usage() -> None:
    reported = AIMessage(
        content="hi",
        usage_metadata={"input_tokens": 1234, "output_tokens": 5, "total_tokens": 1239},
    )

    assert estimate_tokens([HumanMessage(content="x" * 400), reported]) == 1234
    assert estimate_tokens([HumanMessage(content="x" * 400)]) == 100


def test_maybe_compact_respects_threshold() -> None:
    manager = ContextManager(ContextManagerConfig(compaction_threshold_tokens=50_000, keep_recent_turn_pairs=2))
    messages = _conversation(6)

    untouched = manager.maybe_compact(messages, input_tokens_used=10)
    compacted = manager.maybe_compact(messages, input_tokens_used=60_000)

    assert untouched.turn_pairs_removed == 0
    assert compacted.turn_pairs_removed == 4
