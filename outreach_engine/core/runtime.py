"""Deterministic workflow runtime.

Interprets a linear list of trigger / condition / delay / action nodes against
a trigger payload. There is no branching: nodes run in order and the only
early exit is a failed condition flagged ``stopOnFalse``.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, Optional

from ..models.core import (
    ActionContext, ActionInput, EventLevel, ExecutionResult, ExecutionStatusEnum,
    NodeType, RuntimeInput, WorkflowNode
)
from .action_registry import ActionDispatcher
from .exceptions import ExecutionCapExceededError, UnsupportedNodeTypeError
from .logging import get_logger
from .payload import MISSING, read_path

logger = get_logger(__name__)

MAX_DELAY_MS = 2000

_LOG_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.WARN: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}

NodeEventHook = Callable[[str, str, Dict[str, Any]], Awaitable[None]]
SleepFunction = Callable[[float], Awaitable[Any]]


def _strict_equals(left: Any, right: Any) -> bool:
    # Booleans never compare equal to numbers.
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if left is MISSING or right is MISSING:
        return left is right
    return left == right


def _renders_empty(value: Any) -> bool:
    """True for values whose text form is empty: ``""``, ``[]``, ``[""]``, ``[[]]``, ``[None]``."""
    if value is None or value is MISSING or value == "":
        return True
    if isinstance(value, list):
        return len(value) == 0 or (len(value) == 1 and _renders_empty(value[0]))
    return False


def evaluate_condition(config: Dict[str, Any], trigger_payload: Dict[str, Any]) -> bool:
    """Evaluate one comparison from a condition node's config.

    Supported operators: ``exists`` (default), ``equals``, ``not_equals`` and
    ``is_true``. Unknown operators evaluate to False.
    """
    operator = str(config.get("operator") or "exists").lower()
    path = str(config.get("path") or "")
    left = read_path(trigger_payload, path) if path else MISSING

    if operator == "exists":
        return not _renders_empty(left)
    if operator == "equals":
        return _strict_equals(left, config.get("value", MISSING))
    if operator == "not_equals":
        return not _strict_equals(left, config.get("value", MISSING))
    if operator == "is_true":
        return left is True
    return False


def coerce_delay_ms(value: Any) -> float:
    """Turn a configured delay into a finite number; anything else is 0."""
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number


def _node_type(node: WorkflowNode) -> str:
    raw = node.type
    return raw.value if isinstance(raw, NodeType) else str(raw)


class WorkflowRuntime:
    """Runs one workflow instance as a single sequence of awaited steps.

    The runtime holds no state between executions, so one instance can serve
    concurrent runs.
    """

    def __init__(self, dispatcher: ActionDispatcher, sleep: Optional[SleepFunction] = None):
        """Initialize the runtime.

        Args:
            dispatcher: Dispatcher used for ``action`` nodes
            sleep: Coroutine used to suspend in ``delay`` nodes; defaults to ``asyncio.sleep``
        """
        self.dispatcher = dispatcher
        self._sleep = sleep or asyncio.sleep

    async def run(self, runtime_input: RuntimeInput,
                  on_node_event: Optional[NodeEventHook] = None) -> ExecutionResult:
        """
        Execute the workflow's nodes in order.

        Args:
            runtime_input: Workflow, trigger data, identifiers and the action cap
            on_node_event: Awaited for every lifecycle event as ``(level, event_type, payload)``

        Returns:
            Result with the number of actions executed and whether a condition stopped the run

        Raises:
            ExecutionCapExceededError: More action nodes were reached than ``max_actions``
            UnsupportedNodeTypeError: A node has a type the runtime does not know
            WorkflowEngineError: Any error raised by an action adapter, unchanged
        """
        execution_id = runtime_input.execution_id
        trigger_type = runtime_input.trigger_type
        trigger_payload = runtime_input.trigger_payload
        context = ActionContext(
            execution_id=execution_id,
            tenant_id=runtime_input.tenant_id,
            client_id=runtime_input.client_id,
            trigger_payload=trigger_payload,
        )

        async def emit(level: EventLevel, event_type: str, payload: Dict[str, Any]) -> None:
            logger.log(_LOG_LEVELS[level], f"{event_type} {payload}")
            if on_node_event is None:
                return
            try:
                await on_node_event(level.value, event_type, payload)
            except Exception as e:
                logger.warning(f"Node event hook failed for {event_type} in execution {execution_id}: {e}")

        actions_executed = 0

        for node in runtime_input.workflow.nodes:
            node_type = _node_type(node)
            config = node.config or {}
            await emit(EventLevel.INFO, "node.enter", {"nodeId": node.id, "nodeType": node_type})

            if node_type == NodeType.TRIGGER.value:
                expected = str(config.get("event") or "").strip()
                if expected and expected != trigger_type:
                    await emit(EventLevel.WARN, "node.trigger.skipped",
                               {"nodeId": node.id, "expected": expected, "actual": trigger_type})
                    continue
                await emit(EventLevel.INFO, "node.trigger.matched",
                           {"nodeId": node.id, "triggerType": trigger_type})
                continue

            if node_type == NodeType.CONDITION.value:
                passed = evaluate_condition(config, trigger_payload)
                await emit(EventLevel.INFO if passed else EventLevel.WARN, "node.condition.evaluated",
                           {"nodeId": node.id, "passed": passed})
                if not passed and config.get("stopOnFalse"):
                    await emit(EventLevel.WARN, "execution.stopped_by_condition", {"nodeId": node.id})
                    logger.info(f"Execution {execution_id} stopped by condition {node.id}")
                    return ExecutionResult(
                        execution_id=execution_id,
                        status=ExecutionStatusEnum.STOPPED,
                        actions_executed=actions_executed,
                        stopped_at_node=node.id,
                    )
                continue

            if node_type == NodeType.DELAY.value:
                requested_ms = coerce_delay_ms(config.get("ms"))
                applied_ms = max(0, min(requested_ms, MAX_DELAY_MS))
                if applied_ms > 0:
                    await self._sleep(applied_ms / 1000)
                await emit(EventLevel.INFO, "node.delay.completed",
                           {"nodeId": node.id, "requestedMs": requested_ms, "appliedMs": applied_ms})
                continue

            if node_type == NodeType.ACTION.value:
                actions_executed += 1
                if actions_executed > runtime_input.max_actions:
                    raise ExecutionCapExceededError(runtime_input.max_actions, node_id=node.id)
                result = await self.dispatcher.execute(
                    ActionInput(node_id=node.id, action=str(config.get("action") or ""), config=config),
                    context,
                )
                await emit(EventLevel.INFO, "node.action.executed", {"nodeId": node.id, **result})
                continue

            raise UnsupportedNodeTypeError(node_type, node_id=node.id)

        return ExecutionResult(
            execution_id=execution_id,
            status=ExecutionStatusEnum.COMPLETED,
            actions_executed=actions_executed,
        )
