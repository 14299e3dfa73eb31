"""
This module defines the contracts exchanged between an executing agent and
the gates that supervise it: tool-call records and stall events consumed by
the stall detector, and the phase/hook results passed between workflow
phases and enforcement hooks.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class StallType(str, Enum):
    REPETITION = "repetition"
    OSCILLATION = "oscillation"
    IDLE = "idle"


class ToolCallRecord(BaseModel):
    """One tool invocation made by the agent during a turn."""

    tool_name: str = Field(..., min_length=1)
    input_hash: str
    had_file_activity: bool = False

    def key(self) -> str:
        return f"{self.tool_name}:{self.input_hash}"


class StallEvent(BaseModel):
    """A detected pattern showing the agent is not making progress."""

    type: StallType
    description: str
    evidence: List[str] = Field(default_factory=list)


class PhaseResult(BaseModel):
    """
    Outcome of one workflow phase, as seen by the hooks guarding the next one.

    `output` carries phase-specific facts such as `tests_created` for the
    test-generation phase or `all_tests_passing` for the development phase.
    """

    phase: str
    success: bool
    output: Dict[str, Any] = Field(default_factory=dict)
    files_created: List[str] = Field(default_factory=list)
    files_modified: List[str] = Field(default_factory=list)
    cost_usd: float = 0.0
    error: Optional[str] = None


class HookResult(BaseModel):
    passed: bool
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class CredentialViolation(BaseModel):
    type: Literal["account_sid", "api_key", "auth_token", "api_secret", "aws_access_key", "private_key"]
    pattern: str
    suggestion: str
    line: Optional[int] = None


__all__ = [
    "StallType",
    "ToolCallRecord",
    "StallEvent",
    "PhaseResult",
    "HookResult",
    "CredentialViolation",
]
