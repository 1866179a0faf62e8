"""Persistence of workflow execution runs and their lifecycle events."""

import threading
from typing import Any, Dict, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..models.core import EventLevel, ExecutionRecord, ExecutionStatusEnum, NodeEvent
from ..storage.database import describe_db_error
from ..storage.models import ExecutionEventModel, WorkflowExecutionModel, utcnow
from .exceptions import ExecutionConflictError, ExecutionNotFoundError, StorageError
from .logging import get_logger

logger = get_logger(__name__)


class ExecutionLog:
    """Records each execution run and the ordered events it emits."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._sequences: Dict[str, int] = {}
        self._sequence_lock = threading.Lock()
        logger.info("ExecutionLog initialized")

    def _next_sequence(self, execution_id: str) -> int:
        with self._sequence_lock:
            sequence = self._sequences.get(execution_id, 0) + 1
            self._sequences[execution_id] = sequence
            return sequence

    def start_run(self, execution_id: str, tenant_id: str, client_id: str,
                  trigger_type: str, workflow_id: Optional[str] = None) -> None:
        """
        Create the run row in ``running`` state.

        Raises:
            StorageError: If the row cannot be written
        """
        session = self._session_factory()
        try:
            session.add(WorkflowExecutionModel(
                id=execution_id,
                tenant_id=tenant_id,
                client_id=client_id,
                workflow_id=workflow_id,
                trigger_type=trigger_type,
                status=ExecutionStatusEnum.RUNNING.value,
                actions_executed=0,
                started_at=utcnow(),
            ))
            session.commit()
            with self._sequence_lock:
                self._sequences[execution_id] = 0
            logger.debug(f"Started execution record {execution_id}")
        except IntegrityError:
            session.rollback()
            raise ExecutionConflictError(execution_id)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to create execution {execution_id}: {describe_db_error(e)}")
            raise StorageError(
                f"Failed to create execution {execution_id}",
                operation="start_run",
                table="workflow_executions",
            )
        finally:
            session.close()

    def record_event(self, execution_id: str, level: str, event_type: str,
                     payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Append an event to a run and return its sequence number.

        The node id is lifted out of ``payload["nodeId"]`` when present.

        Raises:
            StorageError: If the event cannot be written
        """
        payload = dict(payload or {})
        sequence = self._next_sequence(execution_id)
        session = self._session_factory()
        try:
            session.add(ExecutionEventModel(
                execution_id=execution_id,
                sequence=sequence,
                level=EventLevel(level).value,
                event_type=event_type,
                node_id=payload.get("nodeId"),
                payload=payload,
                timestamp=utcnow(),
            ))
            session.commit()
            return sequence
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to record event {event_type} for {execution_id}: {describe_db_error(e)}")
            raise StorageError(
                f"Failed to record event {event_type} for {execution_id}",
                operation="record_event",
                table="execution_events",
            )
        finally:
            session.close()

    def finalize_run(self, execution_id: str, status: ExecutionStatusEnum, actions_executed: int = 0,
                     error_code: Optional[str] = None, error_message: Optional[str] = None) -> None:
        """Mark a run as finished with its terminal status."""
        session = self._session_factory()
        try:
            row = session.get(WorkflowExecutionModel, execution_id)
            if row is None:
                raise ExecutionNotFoundError(execution_id)
            row.status = status.value
            row.actions_executed = actions_executed
            row.error_code = error_code
            row.error_message = error_message
            row.completed_at = utcnow()
            session.commit()
            logger.debug(f"Finalized execution {execution_id} as {status.value}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to finalize execution {execution_id}: {describe_db_error(e)}")
            raise StorageError(
                f"Failed to finalize execution {execution_id}",
                operation="finalize_run",
                table="workflow_executions",
            )
        finally:
            session.close()
            with self._sequence_lock:
                self._sequences.pop(execution_id, None)

    def get_execution(self, execution_id: str) -> ExecutionRecord:
        """
        Load a run with its events in emission order.

        Raises:
            ExecutionNotFoundError: If no run has this id
            StorageError: If the query fails
        """
        session = self._session_factory()
        try:
            row = session.get(WorkflowExecutionModel, execution_id)
            if row is None:
                raise ExecutionNotFoundError(execution_id)
            return ExecutionRecord(
                execution_id=row.id,
                tenant_id=row.tenant_id,
                client_id=row.client_id,
                workflow_id=row.workflow_id,
                trigger_type=row.trigger_type,
                status=row.status,
                actions_executed=row.actions_executed or 0,
                error_code=row.error_code,
                error_message=row.error_message,
                started_at=row.started_at,
                completed_at=row.completed_at,
                events=[
                    NodeEvent(
                        sequence=event.sequence,
                        level=event.level,
                        event_type=event.event_type,
                        node_id=event.node_id,
                        payload=event.payload or {},
                        timestamp=event.timestamp,
                    )
                    for event in row.events
                ],
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load execution {execution_id}: {describe_db_error(e)}")
            raise StorageError(
                f"Failed to load execution {execution_id}",
                operation="get_execution",
                table="workflow_executions",
            )
        finally:
            session.close()
