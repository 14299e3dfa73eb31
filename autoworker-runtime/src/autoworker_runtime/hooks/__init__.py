"""
Enforcement hooks run between workflow phases.

Hooks are looked up by name in a `HookRegistry`. `execute_hook` never
raises: an unknown name or a hook that throws comes back as a failed
`HookResult` so the calling workflow can record it and decide what to do.
The module-level helpers operate on a default registry holding the three
phase gates; credential safety runs on every write instead and is exposed
as plain functions.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from autoworker_contracts import HookResult

from .base import Hook, HookContext
from .coverage_threshold import create_coverage_threshold_hook
from .credential_safety import (
    enforce_credential_safety,
    find_violations,
    should_skip_validation,
    validate_credentials,
)
from .tdd_enforcement import create_tdd_enforcement_hook
from .refactor_safety import create_test_passing_hook

LOGGER = logging.getLogger(__name__)


class HookRegistry:
    def __init__(self, hooks: Optional[List[Hook]] = None) -> None:
        self._hooks: Dict[str, Hook] = {}
        for hook in hooks or []:
            self.register(hook)

    def register(self, hook: Hook) -> None:
        self._hooks[hook.name] = hook

    def get(self, name: str) -> Optional[Hook]:
        return self._hooks.get(name)

    def has(self, name: str) -> bool:
        return name in self._hooks

    def list(self) -> List[Hook]:
        return list(self._hooks.values())

    def execute(self, name: str, context: HookContext) -> HookResult:
        hook = self._hooks.get(name)
        if hook is None:
            return HookResult(passed=False, error=f"Unknown hook: {name}")
        try:
            result = hook.execute(context)
        except Exception as exc:  # noqa: BLE001 - hook crashes become failed results
            LOGGER.exception("Hook %s raised", name)
            return HookResult(passed=False, error=f"Hook {name} threw an error: {exc}")
        if not result.passed:
            LOGGER.info("Hook %s blocked: %s", name, result.error)
        return result


def create_default_registry() -> HookRegistry:
    return HookRegistry(
        [
            create_tdd_enforcement_hook(),
            create_coverage_threshold_hook(),
            create_test_passing_hook(),
        ]
    )


_DEFAULT_REGISTRY = create_default_registry()


def get_hook(name: str) -> Optional[Hook]:
    return _DEFAULT_REGISTRY.get(name)


def has_hook(name: str) -> bool:
    return _DEFAULT_REGISTRY.has(name)


def list_hooks() -> List[Hook]:
    return _DEFAULT_REGISTRY.list()


def execute_hook(name: str, context: HookContext) -> HookResult:
    return _DEFAULT_REGISTRY.execute(name, context)


__all__ = [
    "Hook",
    "HookContext",
    "HookRegistry",
    "create_default_registry",
    "get_hook",
    "has_hook",
    "list_hooks",
    "execute_hook",
    "create_tdd_enforcement_hook",
    "create_coverage_threshold_hook",
    "create_test_passing_hook",
    "validate_credentials",
    "should_skip_validation",
    "enforce_credential_safety",
    "find_violations",
]
