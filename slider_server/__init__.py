"""slider-server: live bond updates for running reactive notebooks."""

from .config import load_config
from .core.differ import apply_patch, diff
from .core.registry import SessionRegistry
from .core.runner import export_directory, run_directory
from .types import (
    DeployConfig,
    ExecutionEngine,
    FinishedSession,
    NotebookSession,
    QueuedSession,
    RunningSession,
    StateResponse,
)

__version__ = "0.1.0"

__all__ = [
    "run_directory",
    "export_directory",
    "load_config",
    "diff",
    "apply_patch",
    "SessionRegistry",
    "DeployConfig",
    "ExecutionEngine",
    "FinishedSession",
    "NotebookSession",
    "QueuedSession",
    "RunningSession",
    "StateResponse",
]
