"""Database models and storage layer."""

from .database import Base, create_database_engine, create_session_factory, create_tables, drop_tables
from .models import CredentialModel, IntegrationVerificationModel, WorkflowExecutionModel, ExecutionEventModel

__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "CredentialModel",
    "IntegrationVerificationModel",
    "WorkflowExecutionModel",
    "ExecutionEventModel",
]
