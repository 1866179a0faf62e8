"""Tests for the workflow runtime."""

from typing import Any, Dict, List, Tuple

import pytest

from outreach_engine.actions import register_default_actions
from outreach_engine.core.action_registry import ActionDispatcher
from outreach_engine.core.exceptions import (
    ExecutionCapExceededError,
    InvalidActionPayloadError,
    UnsupportedNodeTypeError,
)
from outreach_engine.core.runtime import WorkflowRuntime, coerce_delay_ms, evaluate_condition
from outreach_engine.models.core import ExecutionStatusEnum, RuntimeInput, WorkflowDefinition


class EventRecorder:
    """Collects runtime events in emission order."""

    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def __call__(self, level: str, event_type: str, payload: Dict[str, Any]) -> None:
        self.events.append((level, event_type, payload))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [payload for _, kind, payload in self.events if kind == event_type]

    @property
    def types(self) -> List[str]:
        return [kind for _, kind, _ in self.events]


class FakeSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class CountingAction:
    def __init__(self):
        self.calls = 0

    async def __call__(self, action_input, context):
        self.calls += 1
        return {"action": action_input.action, "count": self.calls}


@pytest.fixture
def counting_action():
    return CountingAction()


@pytest.fixture
def dispatcher(credential_store, cipher, whatsapp_client, counting_action):
    dispatcher = register_default_actions(
        ActionDispatcher(), credential_store, cipher, whatsapp_client, dry_run=True
    )
    dispatcher.register_action("test.count", counting_action, "Counts invocations")
    return dispatcher


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def runtime(dispatcher, fake_sleep):
    return WorkflowRuntime(dispatcher, sleep=fake_sleep)


def make_input(nodes, trigger_type="lead.created", payload=None, max_actions=20):
    return RuntimeInput(
        workflow=WorkflowDefinition(id="wf-1", nodes=nodes),
        tenant_id="tenant-1",
        client_id="client-1",
        trigger_type=trigger_type,
        trigger_payload=payload if payload is not None else {"lead": {"phone": "+15551234567"}},
        execution_id="exec-1",
        max_actions=max_actions,
    )


def count_node(node_id):
    return {"id": node_id, "type": "action", "config": {"action": "test.count"}}


class TestWorkflowRuntime:
    """Test cases for WorkflowRuntime.run."""

    @pytest.mark.asyncio
    async def test_end_to_end_dry_run(self, runtime, provider):
        recorder = EventRecorder()
        nodes = [
            {"id": "t1", "type": "trigger", "config": {"event": "lead.created"}},
            {"id": "c1", "type": "condition",
             "config": {"path": "lead.phone", "operator": "exists", "stopOnFalse": True}},
            {"id": "a1", "type": "action",
             "config": {"action": "whatsapp.send_template", "template": "hello_world", "phoneNumberId": "PNID"}},
        ]

        result = await runtime.run(make_input(nodes), on_node_event=recorder)

        assert result.status == ExecutionStatusEnum.COMPLETED
        assert result.actions_executed == 1
        assert result.stopped_at_node is None

        executed = recorder.of_type("node.action.executed")
        assert len(executed) == 1
        assert executed[0]["nodeId"] == "a1"
        assert executed[0]["delivered"] is True
        assert executed[0]["dryRun"] is True
        assert provider.requests == []

        assert recorder.types == [
            "node.enter", "node.trigger.matched",
            "node.enter", "node.condition.evaluated",
            "node.enter", "node.action.executed",
        ]
        assert recorder.of_type("node.enter")[0] == {"nodeId": "t1", "nodeType": "trigger"}

    @pytest.mark.asyncio
    async def test_action_cap_is_enforced(self, runtime, counting_action):
        nodes = [count_node("a1"), count_node("a2"), count_node("a3")]

        with pytest.raises(ExecutionCapExceededError) as exc_info:
            await runtime.run(make_input(nodes, max_actions=2))

        assert counting_action.calls == 2
        assert exc_info.value.node_id == "a3"

    @pytest.mark.asyncio
    async def test_zero_cap_dispatches_nothing(self, runtime, counting_action):
        with pytest.raises(ExecutionCapExceededError):
            await runtime.run(make_input([count_node("a1")], max_actions=0))

        assert counting_action.calls == 0

    @pytest.mark.asyncio
    async def test_condition_short_circuit(self, runtime, counting_action):
        recorder = EventRecorder()
        nodes = [
            {"id": "c1", "type": "condition",
             "config": {"path": "lead.email", "operator": "exists", "stopOnFalse": True}},
            count_node("a1"),
        ]

        result = await runtime.run(make_input(nodes), on_node_event=recorder)

        assert result.status == ExecutionStatusEnum.STOPPED
        assert result.stopped_at_node == "c1"
        assert result.actions_executed == 0
        assert counting_action.calls == 0
        assert recorder.of_type("execution.stopped_by_condition") == [{"nodeId": "c1"}]
        assert ("warn", "node.condition.evaluated", {"nodeId": "c1", "passed": False}) in recorder.events

    @pytest.mark.asyncio
    async def test_failed_condition_without_stop_continues(self, runtime, counting_action):
        nodes = [
            {"id": "c1", "type": "condition", "config": {"path": "lead.email", "operator": "exists"}},
            count_node("a1"),
        ]

        result = await runtime.run(make_input(nodes))

        assert result.status == ExecutionStatusEnum.COMPLETED
        assert counting_action.calls == 1

    @pytest.mark.asyncio
    async def test_unmatched_trigger_continues(self, runtime, counting_action):
        """A trigger node for another event is skipped but the run keeps going."""
        recorder = EventRecorder()
        nodes = [
            {"id": "t1", "type": "trigger", "config": {"event": "lead.updated"}},
            count_node("a1"),
        ]

        result = await runtime.run(make_input(nodes, trigger_type="lead.created"), on_node_event=recorder)

        assert result.status == ExecutionStatusEnum.COMPLETED
        assert result.actions_executed == 1
        assert counting_action.calls == 1
        assert recorder.of_type("node.trigger.skipped") == [
            {"nodeId": "t1", "expected": "lead.updated", "actual": "lead.created"}
        ]

    @pytest.mark.asyncio
    async def test_trigger_without_event_matches(self, runtime):
        recorder = EventRecorder()

        await runtime.run(make_input([{"id": "t1", "type": "trigger"}]), on_node_event=recorder)

        assert recorder.of_type("node.trigger.matched") == [{"nodeId": "t1", "triggerType": "lead.created"}]

    @pytest.mark.asyncio
    async def test_delay_is_clamped(self, runtime, fake_sleep):
        recorder = EventRecorder()

        await runtime.run(make_input([{"id": "d1", "type": "delay", "config": {"ms": 999999}}]),
                          on_node_event=recorder)

        assert fake_sleep.calls == [2.0]
        assert recorder.of_type("node.delay.completed") == [
            {"nodeId": "d1", "requestedMs": 999999, "appliedMs": 2000}
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ms, applied", [
        ("abc", 0),
        (None, 0),
        (-50, 0),
        ("150", 150),
        (float("inf"), 0),
    ])
    async def test_delay_coercion(self, runtime, fake_sleep, ms, applied):
        recorder = EventRecorder()

        await runtime.run(make_input([{"id": "d1", "type": "delay", "config": {"ms": ms}}]),
                          on_node_event=recorder)

        assert recorder.of_type("node.delay.completed")[0]["appliedMs"] == applied
        assert fake_sleep.calls == ([applied / 1000] if applied else [])

    @pytest.mark.asyncio
    async def test_unsupported_node_type(self, runtime):
        with pytest.raises(UnsupportedNodeTypeError) as exc_info:
            await runtime.run(make_input([{"id": "x1", "type": "webhook"}]))

        assert exc_info.value.node_id == "x1"

    @pytest.mark.asyncio
    async def test_adapter_errors_propagate(self, runtime):
        nodes = [{"id": "crm", "type": "action", "config": {"action": "crm.update_status"}}]

        with pytest.raises(InvalidActionPayloadError) as exc_info:
            await runtime.run(make_input(nodes))

        assert exc_info.value.node_id == "crm"

    @pytest.mark.asyncio
    async def test_hook_failure_does_not_abort(self, runtime, counting_action):
        async def broken_hook(level, event_type, payload):
            raise RuntimeError("sink unavailable")

        result = await runtime.run(make_input([count_node("a1")]), on_node_event=broken_hook)

        assert result.status == ExecutionStatusEnum.COMPLETED
        assert counting_action.calls == 1

    @pytest.mark.asyncio
    async def test_empty_workflow_completes(self, runtime):
        result = await runtime.run(make_input([]))

        assert result.status == ExecutionStatusEnum.COMPLETED
        assert result.actions_executed == 0


class TestEvaluateCondition:
    """Test cases for condition operators."""

    PAYLOAD = {"lead": {"phone": "+1555", "score": 1, "vip": True, "optedIn": False, "name": ""}}

    @pytest.mark.parametrize("config, expected", [
        ({"path": "lead.phone"}, True),
        ({"path": "lead.phone", "operator": "EXISTS"}, True),
        ({"path": "lead.email", "operator": "exists"}, False),
        ({"path": "lead.name", "operator": "exists"}, False),
        ({"path": "", "operator": "exists"}, False),
        ({"path": "lead.score", "operator": "equals", "value": 1}, True),
        ({"path": "lead.score", "operator": "equals", "value": "1"}, False),
        ({"path": "lead.score", "operator": "equals", "value": True}, False),
        ({"path": "lead.vip", "operator": "equals", "value": 1}, False),
        ({"path": "lead.vip", "operator": "equals", "value": True}, True),
        ({"path": "lead.score", "operator": "not_equals", "value": 2}, True),
        ({"path": "lead.missing", "operator": "not_equals", "value": None}, True),
        ({"path": "lead.vip", "operator": "is_true"}, True),
        ({"path": "lead.optedIn", "operator": "is_true"}, False),
        ({"path": "lead.score", "operator": "is_true"}, False),
        ({"path": "lead.phone", "operator": "matches"}, False),
        ({"path": "lead.phone.country", "operator": "exists"}, False),
    ])
    def test_operators(self, config, expected):
        assert evaluate_condition(config, self.PAYLOAD) is expected

    LIST_PAYLOAD = {
        "leads": [{"phone": "+1555"}, {"phone": ""}],
        "lead": {"tags": [], "labels": [""], "nested": [[]], "aliases": ["vip"], "pair": ["", ""]},
    }

    @pytest.mark.parametrize("path, expected", [
        ("leads.0.phone", True),
        ("leads.1.phone", False),
        ("leads.2.phone", False),
        ("leads.-1.phone", False),
        ("leads.first.phone", False),
        ("lead.tags", False),
        ("lead.labels", False),
        ("lead.nested", False),
        ("lead.aliases", True),
        ("lead.aliases.0", True),
        ("lead.pair", True),
    ])
    def test_exists_over_lists(self, path, expected):
        assert evaluate_condition({"path": path, "operator": "exists"}, self.LIST_PAYLOAD) is expected

    def test_equals_reads_list_items(self):
        config = {"path": "leads.0.phone", "operator": "equals", "value": "+1555"}

        assert evaluate_condition(config, self.LIST_PAYLOAD) is True


@pytest.mark.parametrize("value, expected", [
    (500, 500),
    ("2500", 2500),
    ("12.5", 12.5),
    ("", 0),
    ([], 0),
    (float("nan"), 0),
])
def test_coerce_delay_ms(value, expected):
    assert coerce_delay_ms(value) == expected
