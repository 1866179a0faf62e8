"""FastAPI REST endpoints for the outreach workflow engine."""

from typing import Dict, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, Header, status
from pydantic import BaseModel, Field

from ..core.action_registry import ActionDispatcher
from ..core.execution_engine import ExecutionEngine
from ..core.integrations import WhatsAppIntegration
from ..core.logging import get_logger
from ..models.core import (
    ExecutionRecord,
    ExecutionResult,
    VerificationMode,
    WorkflowDefinition,
)

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["outreach"])

# Global instances (initialized in the application lifespan)
_execution_engine: Optional[ExecutionEngine] = None
_dispatcher: Optional[ActionDispatcher] = None
_whatsapp_integration: Optional[WhatsAppIntegration] = None


def init_dependencies(
    execution_engine: ExecutionEngine,
    dispatcher: ActionDispatcher,
    whatsapp_integration: WhatsAppIntegration,
):
    """Initialize the global dependencies."""
    global _execution_engine, _dispatcher, _whatsapp_integration
    _execution_engine = execution_engine
    _dispatcher = dispatcher
    _whatsapp_integration = whatsapp_integration


def get_execution_engine() -> ExecutionEngine:
    """Dependency to get execution engine."""
    if _execution_engine is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Execution engine not initialized"
        )
    return _execution_engine


def get_dispatcher() -> ActionDispatcher:
    """Dependency to get action dispatcher."""
    if _dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Action dispatcher not initialized"
        )
    return _dispatcher


def get_whatsapp_integration() -> WhatsAppIntegration:
    """Dependency to get the WhatsApp integration service."""
    if _whatsapp_integration is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WhatsApp integration not initialized"
        )
    return _whatsapp_integration


def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    """Tenant the request acts for, taken from ``X-Tenant-Id``."""
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id header is required"
        )
    return x_tenant_id.strip()


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting user from ``X-User-Id``, if supplied."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


# Request/Response models
class ExecuteWorkflowRequest(BaseModel):
    """Request model for running a workflow."""
    workflow: WorkflowDefinition = Field(..., description="Workflow definition to execute")
    client_id: str = Field(..., min_length=1, description="Client the run acts for")
    trigger_type: str = Field(..., min_length=1, description="Event type that started the run")
    trigger_payload: Dict[str, Any] = Field(default_factory=dict, description="Event data")
    execution_id: Optional[str] = Field(None, description="Run identifier; generated when omitted")
    max_actions: Optional[int] = Field(None, ge=0, description="Action cap for this run")


class ConnectWhatsAppRequest(BaseModel):
    """Request model for storing WhatsApp credentials."""
    access_token: str = Field(..., min_length=1, description="Cloud API access token")
    phone_number_id: str = Field(..., min_length=1, description="Sender phone number id")
    waba_id: Optional[str] = Field(None, description="WhatsApp Business Account id")


class RotateTokenRequest(BaseModel):
    """Request model for replacing the access token."""
    access_token: str = Field(..., min_length=1, description="New Cloud API access token")


class VerifyWhatsAppRequest(BaseModel):
    """Request model for an integration verification attempt."""
    test_recipient: str = Field(..., min_length=1, description="Phone number that receives the test template")
    template: Optional[str] = Field(None, description="Template name; defaults to hello_world")
    language: Optional[str] = Field(None, description="Template language code")
    mode: VerificationMode = Field(VerificationMode.DRY_RUN, description="dry_run or live")


# Endpoints

@router.post(
    "/executions",
    response_model=ExecutionResult,
    summary="Execute a workflow",
    description="Run a workflow definition against a trigger event and wait for the result"
)
async def execute_workflow(
    request: ExecuteWorkflowRequest,
    tenant_id: str = Depends(get_tenant_id),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> ExecutionResult:
    """
    Execute a workflow synchronously.

    Engine errors propagate to the error-handling middleware, which maps them
    to HTTP status codes.
    """
    logger.info(f"Executing workflow {request.workflow.id or '<inline>'} for client {request.client_id}")
    return await execution_engine.execute(
        workflow=request.workflow,
        tenant_id=tenant_id,
        client_id=request.client_id,
        trigger_type=request.trigger_type,
        trigger_payload=request.trigger_payload,
        execution_id=request.execution_id,
        max_actions=request.max_actions,
    )


@router.get(
    "/executions/{execution_id}",
    response_model=ExecutionRecord,
    summary="Get an execution record",
    description="Return a recorded run with its lifecycle events in order"
)
async def get_execution(
    execution_id: str,
    tenant_id: str = Depends(get_tenant_id),
    execution_engine: ExecutionEngine = Depends(get_execution_engine)
) -> ExecutionRecord:
    """Get a recorded execution; runs of other tenants are reported as not found."""
    record = execution_engine.get_execution(execution_id)
    if record.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Execution {execution_id} not found"
        )
    return record


@router.get(
    "/actions",
    summary="List registered actions",
    description="Action identifiers accepted by action nodes, with descriptions"
)
async def list_actions(dispatcher: ActionDispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    """List all registered actions."""
    actions = dispatcher.list_actions()
    return {"actions": actions, "count": len(actions)}


@router.post(
    "/clients/{client_id}/credentials/whatsapp",
    summary="Connect WhatsApp",
    description="Encrypt and store a client's WhatsApp credentials"
)
async def connect_whatsapp(
    client_id: str,
    request: ConnectWhatsAppRequest,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    integration: WhatsAppIntegration = Depends(get_whatsapp_integration)
) -> Dict[str, Any]:
    return integration.connect(
        tenant_id,
        client_id,
        access_token=request.access_token,
        phone_number_id=request.phone_number_id,
        waba_id=request.waba_id,
        user_id=user_id,
    )


@router.post(
    "/clients/{client_id}/credentials/whatsapp/rotate",
    summary="Rotate WhatsApp access token"
)
async def rotate_whatsapp_token(
    client_id: str,
    request: RotateTokenRequest,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    integration: WhatsAppIntegration = Depends(get_whatsapp_integration)
) -> Dict[str, Any]:
    return integration.rotate_access_token(tenant_id, client_id, request.access_token, user_id=user_id)


@router.get(
    "/clients/{client_id}/credentials/whatsapp/status",
    summary="WhatsApp integration status",
    description="Readiness contract and the latest verification attempt"
)
async def whatsapp_status(
    client_id: str,
    tenant_id: str = Depends(get_tenant_id),
    integration: WhatsAppIntegration = Depends(get_whatsapp_integration)
) -> Dict[str, Any]:
    return integration.status(tenant_id, client_id)


@router.post(
    "/clients/{client_id}/credentials/whatsapp/verify",
    summary="Verify WhatsApp integration",
    description="Check stored credentials and optionally perform a live test send"
)
async def verify_whatsapp(
    client_id: str,
    request: VerifyWhatsAppRequest,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    integration: WhatsAppIntegration = Depends(get_whatsapp_integration)
) -> Dict[str, Any]:
    """
    Run a verification attempt.

    Returns:
        ``ok`` plus the appended verification record
    """
    result = await integration.verify(
        tenant_id,
        client_id,
        test_recipient=request.test_recipient,
        mode=request.mode,
        template=request.template,
        language=request.language,
        initiated_by=user_id,
    )
    return {"ok": result["ok"], "verification": result["verification"].model_dump(mode="json")}
