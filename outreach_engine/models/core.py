"""Core Pydantic models for the outreach workflow engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeType(str, Enum):
    """Kinds of steps a workflow can contain."""
    TRIGGER = "trigger"
    CONDITION = "condition"
    DELAY = "delay"
    ACTION = "action"


class EventLevel(str, Enum):
    """Severity of a runtime lifecycle event."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ExecutionStatusEnum(str, Enum):
    """Enumeration of workflow execution statuses."""
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class CredentialType(str, Enum):
    """Credential fields stored per provider."""
    ACCESS_TOKEN = "access_token"
    PHONE_NUMBER_ID = "phone_number_id"
    WABA_ID = "waba_id"


class VerificationStatus(str, Enum):
    """Outcome of an integration verification attempt."""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


class VerificationMode(str, Enum):
    """How far a verification attempt goes."""
    DRY_RUN = "dry_run"
    LIVE = "live"


class WorkflowNode(BaseModel):
    """One step of a linear workflow.

    ``type`` is kept as a plain string so that a definition naming an unknown
    kind reaches the runtime, which rejects it with ``UnsupportedNodeTypeError``.
    """
    id: str = Field(..., description="Identifier unique within the workflow")
    type: str = Field(..., description="Node kind: trigger, condition, delay or action")
    config: Dict[str, Any] = Field(default_factory=dict, description="Type-specific settings")

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not blank."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value.strip()

    @field_validator('config', mode='before')
    @classmethod
    def default_config(cls, config):
        """Treat a null config as empty."""
        return config or {}


class WorkflowDefinition(BaseModel):
    """Ordered list of nodes; order defines execution semantics."""
    id: Optional[str] = Field(None, description="Workflow identifier")
    name: Optional[str] = Field(None, description="Human readable name")
    nodes: List[WorkflowNode] = Field(default_factory=list, description="Nodes in execution order")

    @field_validator('nodes')
    @classmethod
    def validate_unique_node_ids(cls, nodes):
        """Ensure all node IDs are unique."""
        node_ids = [node.id for node in nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")
        return nodes


class ActionInput(BaseModel):
    """What an action node asks the dispatcher to do."""
    node_id: str
    action: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)


class ActionContext(BaseModel):
    """Read-only context shared by every adapter within one execution."""
    model_config = ConfigDict(frozen=True)

    execution_id: str
    tenant_id: str
    client_id: str
    trigger_payload: Dict[str, Any] = Field(default_factory=dict)


class RuntimeInput(BaseModel):
    """Everything the runtime needs to execute one workflow instance."""
    workflow: WorkflowDefinition
    tenant_id: str
    client_id: str
    trigger_type: str
    trigger_payload: Dict[str, Any] = Field(default_factory=dict)
    execution_id: str
    max_actions: int = Field(..., ge=0)


class ExecutionResult(BaseModel):
    """Outcome of a run that did not fail."""
    execution_id: str
    status: ExecutionStatusEnum
    actions_executed: int
    stopped_at_node: Optional[str] = None


class NodeEvent(BaseModel):
    """A recorded lifecycle event of an execution."""
    sequence: int
    level: EventLevel
    event_type: str
    node_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class ExecutionRecord(BaseModel):
    """Stored view of an execution and its events."""
    execution_id: str
    tenant_id: str
    client_id: str
    workflow_id: Optional[str] = None
    trigger_type: str
    status: ExecutionStatusEnum
    actions_executed: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    events: List[NodeEvent] = Field(default_factory=list)


class Credential(BaseModel):
    """A stored provider credential. Only the encrypted form is ever held here."""
    id: int
    tenant_id: str
    client_id: str
    provider: str
    credential_type: str
    encrypted_secret: str = Field(..., repr=False)
    user_id: Optional[str] = None
    created_at: datetime

    def summary(self) -> Dict[str, Any]:
        """Metadata safe to return to API callers."""
        return {
            "id": self.id,
            "provider": self.provider,
            "credential_type": self.credential_type,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
        }


class VerificationCheck(BaseModel):
    """Single check within a verification attempt."""
    key: str
    ok: bool
    detail: str


class IntegrationVerification(BaseModel):
    """Append-only record of a verification attempt."""
    id: Optional[int] = None
    tenant_id: str
    client_id: str
    provider: str
    check_type: str
    status: VerificationStatus
    checks: List[VerificationCheck] = Field(default_factory=list)
    evidence: Dict[str, Any] = Field(default_factory=dict)
    initiated_by: Optional[str] = None
    created_at: Optional[datetime] = None


class IntegrationContract(BaseModel):
    """Derived readiness summary for a provider integration."""
    connected: bool
    verified: bool
    test_send_passed: bool
    stale: bool
    ready: bool
