"""Core workflow engine components."""

from .exceptions import (
    WorkflowEngineError,
    WorkflowConfigurationError,
    CredentialMissingError,
    SendFailedError,
    CipherError,
    StorageError,
)
from .logging import setup_logging, get_logger
from .action_registry import ActionDispatcher
from .runtime import WorkflowRuntime
from .execution_engine import ExecutionEngine

__all__ = [
    "WorkflowEngineError",
    "WorkflowConfigurationError",
    "CredentialMissingError",
    "SendFailedError",
    "CipherError",
    "StorageError",
    "setup_logging",
    "get_logger",
    "ActionDispatcher",
    "WorkflowRuntime",
    "ExecutionEngine",
]
