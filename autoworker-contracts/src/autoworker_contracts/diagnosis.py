"""
This module defines the contracts for validation-failure diagnoses.

A diagnostic step that inspects a failed deep validation produces a
`Diagnosis`: a root-cause category with a confidence, the evidence it looked
at and the fixes it suggests. The validation-failure work source turns each
diagnosis into a `DiscoveredWork` item, so these models are the input side of
that mapping.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RootCauseCategory(str, Enum):
    CONFIGURATION = "configuration"
    ENVIRONMENT = "environment"
    TIMING = "timing"
    EXTERNAL = "external"
    CODE = "code"
    UNKNOWN = "unknown"


class FixActionType(str, Enum):
    CONFIG = "config"
    CODE = "code"
    WAIT = "wait"
    ESCALATE = "escalate"


class RootCause(BaseModel):
    category: RootCauseCategory = RootCauseCategory.UNKNOWN
    description: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class Evidence(BaseModel):
    source: str
    data: Any = None
    relevance: Literal["primary", "supporting"] = "supporting"


class SuggestedFix(BaseModel):
    description: str
    action_type: FixActionType = FixActionType.CODE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    automated: bool = False
    steps: List[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Outcome of the deep validation that prompted the diagnosis."""

    success: bool = False
    resource_sid: str = ""
    resource_type: str = ""
    primary_status: str = ""
    checks: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duration_ms: float = 0.0


class Diagnosis(BaseModel):
    """A diagnosed validation failure, ready to be turned into work."""

    model_config = ConfigDict(extra="ignore")

    pattern_id: str = Field(..., min_length=1)
    summary: str
    root_cause: RootCause = Field(default_factory=RootCause)
    evidence: List[Evidence] = Field(default_factory=list)
    suggested_fixes: List[SuggestedFix] = Field(default_factory=list)
    is_known_pattern: bool = False
    previous_occurrences: int = Field(default=0, ge=0)
    validation_result: ValidationResult = Field(default_factory=ValidationResult)
    timestamp: datetime = Field(default_factory=_utc_now)

    def has_automated_fix(self, min_confidence: float = 0.7) -> bool:
        return any(fix.automated and fix.confidence > min_confidence for fix in self.suggested_fixes)


__all__ = [
    "RootCauseCategory",
    "FixActionType",
    "RootCause",
    "Evidence",
    "SuggestedFix",
    "ValidationResult",
    "Diagnosis",
]
