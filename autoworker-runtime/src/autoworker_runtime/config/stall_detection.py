"""Configuration for the agent stall detector."""

from __future__ import annotations

from dataclasses import dataclass

from ._env import env_bool, env_int


@dataclass(slots=True)
class StallDetectionConfig:
    """
    Thresholds for the three stall detectors.

    Attributes:
        enabled: When False the detector never reports a stall.
        repetition_threshold: Consecutive identical calls that count as repetition.
        oscillation_window_size: Length of the A-B-A-B window checked for oscillation.
        idle_turn_threshold: Turns without file activity that count as idle.
        max_interventions: Interventions allowed before a hard stop is requested.
        history_limit: Maximum tool calls retained in the rolling history.
    """

    enabled: bool = True
    repetition_threshold: int = 3
    oscillation_window_size: int = 6
    idle_turn_threshold: int = 10
    max_interventions: int = 2
    history_limit: int = 200

    @classmethod
    def from_environment(cls) -> "StallDetectionConfig":
        base = cls()
        base.enabled = env_bool("AUTOWORKER_STALL_DETECTION_ENABLED", base.enabled)
        base.repetition_threshold = env_int(
            "AUTOWORKER_STALL_REPETITION_THRESHOLD", base.repetition_threshold
        )
        base.oscillation_window_size = env_int(
            "AUTOWORKER_STALL_OSCILLATION_WINDOW", base.oscillation_window_size
        )
        base.idle_turn_threshold = env_int(
            "AUTOWORKER_STALL_IDLE_TURNS", base.idle_turn_threshold
        )
        base.max_interventions = env_int(
            "AUTOWORKER_STALL_MAX_INTERVENTIONS", base.max_interventions
        )
        return base
