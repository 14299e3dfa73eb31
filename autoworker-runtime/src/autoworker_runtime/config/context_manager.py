"""
This module defines the configuration schema for the ContextManager, which
keeps a long-running agent conversation inside the model's input window.

Layer 1 limits are per tool family and apply to every tool result before it
re-enters the conversation. Layer 2 settings govern whole-conversation
compaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from ._env import env_int


class ToolFamily(str, Enum):
    SHELL = "shell"
    FILE_READ = "file_read"
    SEARCH = "search"
    LISTING = "listing"
    DEFAULT = "default"


def _default_tool_families() -> Dict[str, ToolFamily]:
    return {
        "Bash": ToolFamily.SHELL,
        "bash": ToolFamily.SHELL,
        "shell": ToolFamily.SHELL,
        "Read": ToolFamily.FILE_READ,
        "read_file": ToolFamily.FILE_READ,
        "Grep": ToolFamily.SEARCH,
        "grep": ToolFamily.SEARCH,
        "search": ToolFamily.SEARCH,
        "Glob": ToolFamily.LISTING,
        "glob": ToolFamily.LISTING,
        "list_files": ToolFamily.LISTING,
    }


@dataclass(slots=True)
class ContextManagerConfig:
    """
    Attributes:
        max_shell_output_chars: Character cap for shell output.
        max_file_read_chars: Character cap for file reads.
        max_search_output_chars: Character cap for search output.
        max_listing_paths: Number of paths kept from a directory listing.
        max_default_output_chars: Cap for any tool without a family.
        shell_head_lines: Leading shell lines kept when truncating.
        shell_tail_lines: Trailing shell lines kept when truncating.
        compaction_threshold_tokens: Input tokens at which compaction triggers.
        keep_recent_turn_pairs: Most recent turn-pairs protected from compaction.
        tool_families: Tool name to truncation family.
    """

    max_shell_output_chars: int = 30_000
    max_file_read_chars: int = 40_000
    max_search_output_chars: int = 20_000
    max_listing_paths: int = 200
    max_default_output_chars: int = 20_000
    shell_head_lines: int = 150
    shell_tail_lines: int = 150
    compaction_threshold_tokens: int = 120_000
    keep_recent_turn_pairs: int = 8
    tool_families: Dict[str, ToolFamily] = field(default_factory=_default_tool_families)

    def family_for(self, tool_name: str) -> ToolFamily:
        return self.tool_families.get(tool_name, ToolFamily.DEFAULT)

    @classmethod
    def from_environment(cls) -> "ContextManagerConfig":
        base = cls()
        base.max_shell_output_chars = env_int(
            "AUTOWORKER_MAX_SHELL_OUTPUT_CHARS", base.max_shell_output_chars
        )
        base.max_file_read_chars = env_int("AUTOWORKER_MAX_FILE_READ_CHARS", base.max_file_read_chars)
        base.max_search_output_chars = env_int(
            "AUTOWORKER_MAX_SEARCH_OUTPUT_CHARS", base.max_search_output_chars
        )
        base.max_listing_paths = env_int("AUTOWORKER_MAX_LISTING_PATHS", base.max_listing_paths)
        base.max_default_output_chars = env_int(
            "AUTOWORKER_MAX_TOOL_OUTPUT_CHARS", base.max_default_output_chars
        )
        base.compaction_threshold_tokens = env_int(
            "AUTOWORKER_COMPACTION_THRESHOLD_TOKENS", base.compaction_threshold_tokens
        )
        base.keep_recent_turn_pairs = env_int(
            "AUTOWORKER_KEEP_RECENT_TURN_PAIRS", base.keep_recent_turn_pairs
        )
        return base
