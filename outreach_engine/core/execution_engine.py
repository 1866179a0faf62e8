"""Execution engine: run bookkeeping, timeouts and event persistence around the runtime."""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from ..models.core import (
    EventLevel, ExecutionResult, ExecutionStatusEnum, RuntimeInput, WorkflowDefinition
)
from .exceptions import ExecutionTimeoutError, WorkflowEngineError
from .execution_log import ExecutionLog
from .logging import clear_logging_context, get_logger, log_with_context, set_logging_context
from .runtime import NodeEventHook, WorkflowRuntime

logger = get_logger(__name__)


class ExecutionEngine:
    """Runs workflows through the runtime and records every run and event."""

    def __init__(
        self,
        runtime: WorkflowRuntime,
        execution_log: ExecutionLog,
        default_max_actions: int = 20,
        execution_timeout: Optional[float] = 300.0,
    ):
        """
        Initialize the ExecutionEngine.

        Args:
            runtime: Runtime that interprets workflow nodes
            execution_log: Store for runs and their events
            default_max_actions: Action cap used when a request does not set one
            execution_timeout: Seconds before a run is abandoned; None disables the limit
        """
        self.runtime = runtime
        self.execution_log = execution_log
        self.default_max_actions = default_max_actions
        self.execution_timeout = execution_timeout
        logger.info("ExecutionEngine initialized")

    async def execute(
        self,
        workflow: WorkflowDefinition,
        tenant_id: str,
        client_id: str,
        trigger_type: str,
        trigger_payload: Optional[Dict[str, Any]] = None,
        execution_id: Optional[str] = None,
        max_actions: Optional[int] = None,
        on_node_event: Optional[NodeEventHook] = None,
    ) -> ExecutionResult:
        """
        Execute a workflow to completion and record the run.

        Args:
            workflow: Definition to execute
            tenant_id: Owning tenant
            client_id: Client whose leads and credentials are used
            trigger_type: Event type that started this run
            trigger_payload: Event data read by conditions and adapters
            execution_id: Run identifier; generated when omitted
            max_actions: Action cap; falls back to ``default_max_actions``
            on_node_event: Optional extra hook called after each event is recorded

        Returns:
            ExecutionResult from the runtime

        Raises:
            ExecutionConflictError: If ``execution_id`` names an existing run
            ExecutionTimeoutError: If the run exceeds ``execution_timeout``
            WorkflowEngineError: Any error raised by the runtime or an adapter
        """
        execution_id = execution_id or str(uuid.uuid4())
        runtime_input = RuntimeInput(
            workflow=workflow,
            tenant_id=tenant_id,
            client_id=client_id,
            trigger_type=trigger_type,
            trigger_payload=trigger_payload or {},
            execution_id=execution_id,
            max_actions=self.default_max_actions if max_actions is None else max_actions,
        )

        set_logging_context(execution_id=execution_id, tenant_id=tenant_id, client_id=client_id)
        try:
            self.execution_log.start_run(
                execution_id, tenant_id, client_id, trigger_type, workflow_id=workflow.id
            )
            logger.info(f"Started execution {execution_id} for trigger {trigger_type}")
            return await self._run_and_record(runtime_input, on_node_event)
        finally:
            clear_logging_context()

    async def _run_and_record(self, runtime_input: RuntimeInput,
                              on_node_event: Optional[NodeEventHook]) -> ExecutionResult:
        execution_id = runtime_input.execution_id
        actions_executed = 0

        async def record(level: str, event_type: str, payload: Dict[str, Any]) -> None:
            nonlocal actions_executed
            if event_type == "node.action.executed":
                actions_executed += 1
            self.execution_log.record_event(execution_id, level, event_type, payload)
            if on_node_event is not None:
                await on_node_event(level, event_type, payload)

        try:
            run = self.runtime.run(runtime_input, on_node_event=record)
            if self.execution_timeout:
                result = await asyncio.wait_for(run, timeout=self.execution_timeout)
            else:
                result = await run
        except asyncio.TimeoutError:
            error = ExecutionTimeoutError(execution_id, self.execution_timeout)
            self._fail(execution_id, error, actions_executed)
            raise error
        except WorkflowEngineError as e:
            self._fail(execution_id, e, actions_executed)
            raise
        except Exception as e:
            logger.error(f"Unexpected error in execution {execution_id}: {e}", exc_info=True)
            self._record_failure(execution_id, "internal_error", str(e), actions_executed)
            raise

        self.execution_log.finalize_run(
            execution_id, result.status, actions_executed=result.actions_executed
        )
        logger.info(
            f"Execution {execution_id} {result.status.value} after "
            f"{result.actions_executed} action(s)"
        )
        return result

    def _fail(self, execution_id: str, error: WorkflowEngineError, actions_executed: int) -> None:
        level = logging.WARNING if error.is_configuration_error else logging.ERROR
        log_with_context(
            logger,
            level,
            f"Execution {execution_id} failed: {error.message}",
            error_code=error.error_code,
            recoverable=error.recoverable,
            **error.context,
        )
        self._record_failure(execution_id, error.error_code, error.message, actions_executed)

    def _record_failure(self, execution_id: str, error_code: str, error_message: str,
                        actions_executed: int) -> None:
        try:
            self.execution_log.record_event(
                execution_id,
                EventLevel.ERROR.value,
                "execution.failed",
                {"errorCode": error_code, "message": error_message},
            )
            self.execution_log.finalize_run(
                execution_id,
                ExecutionStatusEnum.FAILED,
                actions_executed=actions_executed,
                error_code=error_code,
                error_message=error_message,
            )
        except WorkflowEngineError as e:
            logger.error(f"Failed to record failure of execution {execution_id}: {e.message}")

    def get_execution(self, execution_id: str):
        """Return the recorded run; raises ExecutionNotFoundError if unknown."""
        return self.execution_log.get_execution(execution_id)
