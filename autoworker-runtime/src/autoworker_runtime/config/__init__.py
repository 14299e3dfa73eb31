"""
This package defines the configuration objects for the autoworker runtime.

Each dataclass carries sensible defaults and a `from_environment()` factory.
Only the process entry point calls those factories; the resulting objects are
passed explicitly to the components they configure.
"""
from .context_manager import ContextManagerConfig, ToolFamily
from .stall_detection import StallDetectionConfig
from .worker import WorkerConfig, load_approval_policy

__all__ = [
    "ContextManagerConfig",
    "ToolFamily",
    "StallDetectionConfig",
    "WorkerConfig",
    "load_approval_policy",
]
