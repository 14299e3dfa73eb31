"""Shared types for phase enforcement hooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict

from autoworker_contracts import HookResult, PhaseResult


@dataclass(slots=True)
class HookContext:
    """
    What a hook sees when it runs between two workflow phases.

    Attributes:
        working_directory: Project root the workflow operates on.
        previous_phase_results: Results of the phases that already ran,
            keyed by phase name (``"test-gen"``, ``"dev"``...).
        verbose: Emit progress at INFO instead of DEBUG.
    """

    working_directory: Path
    previous_phase_results: Dict[str, PhaseResult] = field(default_factory=dict)
    verbose: bool = False


@dataclass(frozen=True)
class Hook:
    name: str
    description: str
    execute: Callable[[HookContext], HookResult]
