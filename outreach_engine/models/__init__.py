"""Data models for the outreach workflow engine."""

from .core import (
    NodeType,
    EventLevel,
    ExecutionStatusEnum,
    CredentialType,
    VerificationStatus,
    VerificationMode,
    WorkflowNode,
    WorkflowDefinition,
    ActionInput,
    ActionContext,
    RuntimeInput,
    ExecutionResult,
    NodeEvent,
    ExecutionRecord,
    Credential,
    VerificationCheck,
    IntegrationVerification,
    IntegrationContract,
)

__all__ = [
    "NodeType",
    "EventLevel",
    "ExecutionStatusEnum",
    "CredentialType",
    "VerificationStatus",
    "VerificationMode",
    "WorkflowNode",
    "WorkflowDefinition",
    "ActionInput",
    "ActionContext",
    "RuntimeInput",
    "ExecutionResult",
    "NodeEvent",
    "ExecutionRecord",
    "Credential",
    "VerificationCheck",
    "IntegrationVerification",
    "IntegrationContract",
]
