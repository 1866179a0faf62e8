"""SQLAlchemy database models for the outreach engine."""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship
from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialModel(Base):
    """Encrypted provider credential. Rows are appended; the newest per key is current."""
    __tablename__ = "credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False)
    client_id = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    credential_type = Column(String, nullable=False)
    encrypted_secret = Column(Text, nullable=False)
    user_id = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_credentials_lookup", "tenant_id", "client_id", "provider", "credential_type", "id"),
    )


class IntegrationVerificationModel(Base):
    """Append-only record of an integration verification attempt."""
    __tablename__ = "integration_verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False)
    client_id = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    check_type = Column(String, nullable=False)
    status = Column(String, nullable=False)  # passed, failed, partial
    checks = Column(JSON, nullable=False)
    evidence = Column(JSON, nullable=False)
    initiated_by = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_verifications_latest", "tenant_id", "client_id", "provider", "check_type", "created_at"),
    )


class WorkflowExecutionModel(Base):
    """Database model for workflow execution runs."""
    __tablename__ = "workflow_executions"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, nullable=False)
    client_id = Column(String, nullable=False)
    workflow_id = Column(String)
    trigger_type = Column(String, nullable=False)
    status = Column(String, nullable=False)  # running, completed, stopped, failed
    actions_executed = Column(Integer, default=0, nullable=False)
    error_code = Column(String)
    error_message = Column(Text)
    started_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime)

    events = relationship(
        "ExecutionEventModel",
        back_populates="execution",
        order_by="ExecutionEventModel.sequence",
    )


class ExecutionEventModel(Base):
    """Lifecycle event emitted while executing a workflow."""
    __tablename__ = "execution_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, ForeignKey("workflow_executions.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    level = Column(String, nullable=False)  # info, warn, error
    event_type = Column(String, nullable=False)
    node_id = Column(String)
    payload = Column(JSON)
    timestamp = Column(DateTime, default=utcnow)

    execution = relationship("WorkflowExecutionModel", back_populates="events")

    __table_args__ = (
        Index("idx_execution_events_run", "execution_id", "sequence"),
    )
