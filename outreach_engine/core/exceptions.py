"""Custom exceptions for the outreach workflow engine with detailed error information."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    CONFIGURATION = "configuration"
    INTEGRATION = "integration"
    SECURITY = "security"
    STORAGE = "storage"
    EXECUTION = "execution"
    NOT_FOUND = "not_found"


class WorkflowEngineError(Exception):
    """Base exception for all outreach engine errors."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    @property
    def is_configuration_error(self) -> bool:
        """True when the failure comes from the workflow definition rather than the environment."""
        return self.category == ErrorCategory.CONFIGURATION

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class ConfigurationError(WorkflowEngineError):
    """Raised when application configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


# Workflow definition errors

class WorkflowConfigurationError(WorkflowEngineError):
    """Base class for errors caused by a misconfigured workflow definition."""

    http_status = 422

    def __init__(self, message: str, node_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        self.node_id = node_id
        if node_id:
            self.add_context(node_id=node_id)


class InvalidActionPayloadError(WorkflowConfigurationError):
    """Raised when an action node lacks a field its adapter needs."""

    def __init__(self, node_id: str, action: str, reason: Optional[str] = None):
        suffix = f": {reason}" if reason else ""
        super().__init__(
            f"Invalid payload for action '{action}' on node '{node_id}'{suffix}",
            node_id=node_id,
            error_code="invalid_action_payload",
        )
        self.action = action
        self.add_context(action=action)
        if reason:
            self.add_details(reason=reason)


class MissingActionError(WorkflowConfigurationError):
    """Raised when an action node does not name an action."""

    def __init__(self, node_id: str):
        super().__init__(
            f"Action node '{node_id}' does not specify an action",
            node_id=node_id,
            error_code="missing_action",
        )


class UnsupportedActionError(WorkflowConfigurationError):
    """Raised when no adapter is registered for an action identifier."""

    def __init__(self, action: str, node_id: Optional[str] = None):
        super().__init__(
            f"Unsupported action: {action}",
            node_id=node_id,
            error_code="unsupported_action",
        )
        self.action = action
        self.add_context(action=action)


class UnsupportedNodeTypeError(WorkflowConfigurationError):
    """Raised when a workflow contains a node type the runtime cannot interpret."""

    def __init__(self, node_type: Any, node_id: Optional[str] = None):
        super().__init__(
            f"Unsupported node type: {node_type}",
            node_id=node_id,
            error_code="unsupported_node_type",
        )
        self.node_type = node_type
        self.add_context(node_type=str(node_type))


class ExecutionCapExceededError(WorkflowConfigurationError):
    """Raised when an execution reaches more action nodes than its cap allows."""

    def __init__(self, max_actions: int, node_id: Optional[str] = None):
        super().__init__(
            f"Execution exceeded its cap of {max_actions} actions",
            node_id=node_id,
            error_code="execution_cap_exceeded",
        )
        self.max_actions = max_actions
        self.add_details(max_actions=max_actions)


class ActionRegistryError(WorkflowEngineError):
    """Raised when action registry operations fail."""

    def __init__(self, message: str, action: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if action:
            self.add_context(action=action)


# Integration errors

class CredentialMissingError(WorkflowEngineError):
    """Raised when a provider credential has not been stored for the client."""

    http_status = 409

    def __init__(self, provider: str, credential_type: str, **kwargs):
        super().__init__(
            f"Missing credential {provider}.{credential_type}",
            error_code="credential_missing",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.INTEGRATION,
            recoverable=True,
            **kwargs
        )
        self.provider = provider
        self.credential_type = credential_type
        self.add_context(provider=provider, credential_type=credential_type)


class SendFailedError(WorkflowEngineError):
    """Raised when a provider rejects or cannot receive a send request."""

    http_status = 502

    def __init__(
        self,
        provider: str,
        status_code: Optional[int] = None,
        node_id: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs
    ):
        label = status_code if status_code is not None else "transport_error"
        super().__init__(
            f"{provider} send failed: {label}",
            error_code="send_failed",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.INTEGRATION,
            recoverable=True,
            **kwargs
        )
        self.provider = provider
        self.status_code = status_code
        self.add_context(provider=provider)
        if node_id:
            self.add_context(node_id=node_id)
        self.add_details(status_code=status_code)
        if reason:
            self.add_details(reason=reason)


# Secret handling errors

class CipherError(WorkflowEngineError):
    """Base class for secret decryption failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.SECURITY,
            **kwargs
        )


class EmptySecretError(WorkflowEngineError):
    """Raised when asked to encrypt an empty secret."""

    http_status = 422

    def __init__(self):
        super().__init__(
            "Cannot encrypt an empty secret",
            error_code="empty_secret",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.SECURITY,
        )


class InvalidCiphertextFormatError(CipherError):
    """Raised when an encrypted token is not three base64 segments."""

    def __init__(self, reason: str = "expected iv.tag.ciphertext"):
        super().__init__(
            f"Invalid ciphertext format: {reason}",
            error_code="invalid_ciphertext_format",
        )


class AuthenticationFailedError(CipherError):
    """Raised when the authentication tag does not verify (tampering or wrong key)."""

    def __init__(self):
        super().__init__(
            "Ciphertext authentication failed",
            error_code="authentication_failed",
        )


# Execution and storage errors

class ExecutionTimeoutError(WorkflowEngineError):
    """Raised when an execution does not finish within its time limit."""

    http_status = 504

    def __init__(self, execution_id: str, timeout: float):
        super().__init__(
            f"Execution {execution_id} timed out after {timeout} seconds",
            error_code="execution_timeout",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            recoverable=True,
        )
        self.add_context(execution_id=execution_id)
        self.add_details(timeout=timeout)


class ExecutionNotFoundError(WorkflowEngineError):
    """Raised when an execution id has no recorded run."""

    http_status = 404

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} not found",
            error_code="execution_not_found",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.NOT_FOUND,
        )
        self.add_context(execution_id=execution_id)


class ExecutionConflictError(WorkflowEngineError):
    """Raised when a caller-supplied execution id has already been used."""

    http_status = 409

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} already exists",
            error_code="execution_conflict",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.EXECUTION,
        )
        self.add_context(execution_id=execution_id)


class StorageError(WorkflowEngineError):
    """Raised when storage operations fail.

    The message never includes driver text, which can carry SQL and bound
    parameters; callers log the underlying exception instead.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
