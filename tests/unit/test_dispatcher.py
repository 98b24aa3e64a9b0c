"""Unit tests for the per-item Dispatcher."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from central_command.errors import (
    ExecutorError,
    PayloadParseError,
    RecordStoreError,
    SchemaFieldError,
)
from central_command.models import ExecutorResult, Priority, WorkItem, WorkItemStatus
from central_command.orchestrator.dispatcher import (
    Dispatcher,
    build_task_descriptor,
    default_deliverables,
    parse_routing_payload,
)
from central_command.orchestrator.ledger import ExecutionLedger
from central_command.orchestrator.state_machine import InvalidTransitionError, StatusUpdater


def make_clock(*readings: float):
    values = iter(readings)
    return lambda: next(values)


def make_item(**overrides) -> WorkItem:
    data = {"record_id": "rec1", "task_id": "T-1"}
    data.update(overrides)
    return WorkItem(**data)


@pytest.fixture
def store():
    mock = AsyncMock()
    mock.update_fields = AsyncMock(return_value=None)
    mock.create_execution = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def executor():
    mock = MagicMock()
    mock.execute = AsyncMock(
        return_value=ExecutorResult(status="completed", tokensUsed=100, confidence=0.9)
    )
    return mock


@pytest.fixture
def dispatcher(store, executor):
    return Dispatcher(
        status_updater=StatusUpdater(store),
        executor=executor,
        ledger=ExecutionLedger(store),
        clock=make_clock(100.0, 130.0),
    )


def statuses_written(store) -> list[str]:
    return [call.args[1]["status"] for call in store.update_fields.await_args_list]


class TestParseRoutingPayload:
    def test_object(self):
        assert parse_routing_payload('{"goal": "x"}') == {"goal": "x"}

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty(self, raw):
        assert parse_routing_payload(raw) == {}

    def test_invalid_json(self):
        with pytest.raises(PayloadParseError):
            parse_routing_payload("{not json")

    def test_non_object(self):
        with pytest.raises(PayloadParseError, match="list"):
            parse_routing_payload("[1, 2]")


class TestBuildTaskDescriptor:
    def test_full_payload(self):
        item = make_item(priority="P3")
        payload = {
            "goal": "Write the launch plan",
            "deliverables": ["plan", "timeline"],
            "priority": "P0",
            "constraints": ["no weekends"],
            "context": "Q3 launch",
            "deadline": "2026-05-01",
        }

        descriptor = build_task_descriptor(item, payload, "gpt4", "superchase")

        assert descriptor.id == "T-1"
        assert descriptor.goal == "Write the launch plan"
        assert descriptor.deliverables == ["plan", "timeline"]
        assert descriptor.priority == "critical"
        assert descriptor.constraints == ["no weekends"]
        assert descriptor.context == "Q3 launch"
        assert descriptor.deadline == "2026-05-01"
        assert descriptor.assigned_agent == "gpt4"
        assert descriptor.system_target == "superchase"

    def test_empty_payload_falls_back(self):
        descriptor = build_task_descriptor(make_item(priority="P1"), {}, "claude", "superchase")

        assert descriptor.goal == "T-1"
        assert descriptor.deliverables == ["architecture_doc", "implementation_plan"]
        assert descriptor.priority == "high"
        assert descriptor.constraints == []
        assert descriptor.context == ""
        assert descriptor.deadline is None

    @pytest.mark.parametrize("key", ["description", "task"])
    def test_goal_alternatives(self, key):
        descriptor = build_task_descriptor(make_item(), {key: "Do it"}, "claude", "x")
        assert descriptor.goal == "Do it"

    def test_unrecognized_payload_priority_keeps_item_priority(self):
        descriptor = build_task_descriptor(make_item(priority="P0"), {"priority": "urgent"}, "claude", "x")
        assert descriptor.priority == "critical"

    def test_single_deliverable_becomes_list(self):
        descriptor = build_task_descriptor(make_item(), {"deliverables": "memo"}, "claude", "x")
        assert descriptor.deliverables == ["memo"]

    def test_numeric_deadline_is_stringified(self):
        descriptor = build_task_descriptor(make_item(), {"deadline": 1700000000}, "claude", "x")
        assert descriptor.deadline == "1700000000"

    @pytest.mark.parametrize("deadline", [{"date": "2026-05-01"}, ["2026-05-01"], ""])
    def test_unusable_deadline_is_dropped(self, deadline):
        descriptor = build_task_descriptor(make_item(), {"deadline": deadline}, "claude", "x")
        assert descriptor.deadline is None

    def test_numeric_goal_is_stringified(self):
        descriptor = build_task_descriptor(make_item(), {"goal": 42}, "claude", "x")
        assert descriptor.goal == "42"

    def test_container_goal_falls_back(self):
        descriptor = build_task_descriptor(
            make_item(), {"goal": {"text": "x"}, "task": "Do it"}, "claude", "x"
        )
        assert descriptor.goal == "Do it"

        descriptor = build_task_descriptor(make_item(), {"goal": ["x"]}, "claude", "x")
        assert descriptor.goal == "T-1"


def test_default_deliverables():
    assert default_deliverables("multi_agent") == ["comprehensive_report"]
    assert default_deliverables("copilot") == ["code", "documentation"]
    assert default_deliverables("unknown") == ["analysis"]


class TestResolveAssignment:
    def test_keeps_existing_values(self, dispatcher):
        item = make_item(assigned_agent="gpt4", system_target="crm", routing_payload="send email")
        assert dispatcher.resolve_assignment(item) == ("gpt4", "crm")

    def test_fills_only_missing_target(self, dispatcher):
        item = make_item(assigned_agent="copilot", routing_payload='{"goal": "design"}')
        assert dispatcher.resolve_assignment(item) == ("copilot", "superchase")

    def test_classifies_when_missing(self, dispatcher):
        item = make_item(routing_payload='{"goal": "marketing content"}')
        assert dispatcher.resolve_assignment(item) == ("gpt4", "superchase")


class TestRouteTask:
    """Tests for Dispatcher.route_task."""

    @pytest.mark.asyncio
    async def test_success_path(self, dispatcher, store, executor):
        item = make_item(
            routing_payload=json.dumps({"goal": "Design the system architecture"}),
            priority="P1",
        )

        outcome = await dispatcher.route_task(item)

        assert outcome.succeeded
        assert outcome.status is WorkItemStatus.done
        assert outcome.agent == "claude"
        assert outcome.system_target == "superchase"
        assert outcome.elapsed_seconds == 30.0
        assert outcome.cost == 0.05
        assert outcome.execution_id is not None
        assert statuses_written(store) == ["in_progress", "done"]
        assert store.update_fields.await_args_list[1].args[1]["cost_actual"] == 0.05
        assert item.status is WorkItemStatus.done
        assert item.completed_at is not None

        descriptor = executor.execute.await_args.args[0]
        assert descriptor.goal == "Design the system architecture"
        assert descriptor.priority == "high"

        store.create_execution.assert_awaited_once()
        fields = store.create_execution.await_args.args[1]
        assert fields["outcome"] == "success"
        assert fields["tokens_consumed"] == 100
        assert fields["confidence_score"] == 0.9
        assert fields["task_link"] == ["rec1"]

    @pytest.mark.asyncio
    async def test_invalid_payload_degrades_to_defaults(self, dispatcher, executor):
        item = make_item(task_id="T-77", routing_payload="{not json")

        outcome = await dispatcher.route_task(item)

        assert outcome.succeeded
        descriptor = executor.execute.await_args.args[0]
        assert descriptor.goal == "T-77"
        assert descriptor.deliverables == ["architecture_doc", "implementation_plan"]

    @pytest.mark.asyncio
    async def test_estimates_tokens_when_not_reported(self, dispatcher, store, executor):
        executor.execute.return_value = ExecutorResult(status="completed")
        item = make_item(routing_payload=json.dumps({"goal": "a" * 10}))

        await dispatcher.route_task(item)

        fields = store.create_execution.await_args.args[1]
        assert fields["tokens_consumed"] == 60
        assert fields["confidence_score"] == 0.85

    @pytest.mark.asyncio
    async def test_executor_failure(self, dispatcher, store, executor):
        executor.execute.side_effect = ExecutorError("intake unreachable")
        item = make_item()

        outcome = await dispatcher.route_task(item)

        assert not outcome.succeeded
        assert outcome.status is WorkItemStatus.error
        assert outcome.error == "intake unreachable"
        assert outcome.cost is None
        executor.execute.assert_awaited_once()
        assert statuses_written(store) == ["in_progress", "error"]
        assert store.update_fields.await_args_list[1].args[1]["last_error"] == "intake unreachable"
        assert item.last_error == "intake unreachable"

        store.create_execution.assert_awaited_once()
        fields = store.create_execution.await_args.args[1]
        assert fields["outcome"] == "failed"
        assert fields["cost_usd"] == 0
        assert fields["output_summary"] == "Error after 30s: intake unreachable"

    @pytest.mark.asyncio
    async def test_unexpected_executor_exception_is_wrapped(self, dispatcher, store, executor):
        executor.execute.side_effect = ConnectionResetError("reset by peer")

        outcome = await dispatcher.route_task(make_item())

        assert outcome.status is WorkItemStatus.error
        assert outcome.error == "reset by peer"
        assert store.create_execution.await_count == 1

    @pytest.mark.asyncio
    async def test_executor_reported_failure(self, dispatcher, store, executor):
        executor.execute.return_value = ExecutorResult(status="failed", summary="agent crashed")

        outcome = await dispatcher.route_task(make_item())

        assert outcome.status is WorkItemStatus.error
        assert outcome.error == "agent crashed"
        assert statuses_written(store) == ["in_progress", "error"]

    @pytest.mark.asyncio
    async def test_executor_timeout(self, store):
        async def hang(descriptor):
            await asyncio.sleep(10)

        executor = MagicMock()
        executor.execute = AsyncMock(side_effect=hang)
        dispatcher = Dispatcher(
            status_updater=StatusUpdater(store),
            executor=executor,
            ledger=ExecutionLedger(store),
            executor_timeout=0.01,
        )

        outcome = await dispatcher.route_task(make_item())

        assert outcome.status is WorkItemStatus.error
        assert "timed out" in outcome.error
        assert store.create_execution.await_count == 1

    @pytest.mark.asyncio
    async def test_not_queued_item_is_rejected(self, dispatcher, store, executor):
        item = make_item(status=WorkItemStatus.done)

        with pytest.raises(InvalidTransitionError):
            await dispatcher.route_task(item)

        executor.execute.assert_not_awaited()
        store.update_fields.assert_not_awaited()
        store.create_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_in_progress_write_failure_propagates(self, dispatcher, store, executor):
        store.update_fields.side_effect = RecordStoreError("HTTP 503", status_code=503)

        with pytest.raises(RecordStoreError):
            await dispatcher.route_task(make_item())

        executor.execute.assert_not_awaited()
        store.create_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_schema_fallback_still_completes(self, dispatcher, store):
        store.update_fields.side_effect = [
            None,
            SchemaFieldError('Unknown field name: "cost_actual"', field_name="cost_actual"),
            None,
        ]
        item = make_item()

        outcome = await dispatcher.route_task(item)

        assert outcome.succeeded
        assert statuses_written(store) == ["in_progress", "done", "done"]
        assert store.update_fields.await_args_list[2].args[1] == {"status": "done"}
        assert item.status is WorkItemStatus.done
        assert item.completed_at is not None

    @pytest.mark.asyncio
    async def test_done_write_failure_records_error(self, dispatcher, store):
        store.update_fields.side_effect = [
            None,
            RecordStoreError("HTTP 500", status_code=500),
            None,
        ]
        item = make_item()

        outcome = await dispatcher.route_task(item)

        assert outcome.status is WorkItemStatus.error
        assert outcome.error.startswith("Completion update failed")
        assert statuses_written(store) == ["in_progress", "done", "error"]
        assert store.create_execution.await_count == 1
        assert store.create_execution.await_args.args[1]["outcome"] == "failed"

    @pytest.mark.asyncio
    async def test_error_write_failure_still_writes_ledger(self, dispatcher, store, executor):
        executor.execute.side_effect = ExecutorError("boom")
        store.update_fields.side_effect = [None, RecordStoreError("HTTP 500", status_code=500)]

        with pytest.raises(RecordStoreError):
            await dispatcher.route_task(make_item())

        store.create_execution.assert_awaited_once()
        assert store.create_execution.await_args.args[1]["outcome"] == "failed"

    @pytest.mark.asyncio
    async def test_payload_priority_overrides_item(self, dispatcher, executor):
        item = make_item(priority=Priority.P3, routing_payload='{"priority": "P0"}')

        await dispatcher.route_task(item)

        assert executor.execute.await_args.args[0].priority == "critical"

    @pytest.mark.asyncio
    async def test_numeric_deadline_completes(self, dispatcher, store, executor):
        item = make_item(routing_payload=json.dumps({"goal": "x", "deadline": 1700000000}))

        outcome = await dispatcher.route_task(item)

        assert outcome.status is WorkItemStatus.done
        assert statuses_written(store) == ["in_progress", "done"]
        assert executor.execute.await_args.args[0].deadline == "1700000000"
        store.create_execution.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_descriptor_failure_records_error(self, dispatcher, store, executor, monkeypatch):
        def broken(*args, **kwargs):
            raise ValueError("deadline: not a string")

        monkeypatch.setattr(
            "central_command.orchestrator.dispatcher.build_task_descriptor", broken
        )
        item = make_item(routing_payload='{"goal": "x"}')

        outcome = await dispatcher.route_task(item)

        assert outcome.status is WorkItemStatus.error
        assert outcome.error.startswith("Invalid task descriptor")
        assert item.status is WorkItemStatus.error
        assert statuses_written(store) == ["in_progress", "error"]
        executor.execute.assert_not_awaited()

        store.create_execution.assert_awaited_once()
        fields = store.create_execution.await_args.args[1]
        assert fields["outcome"] == "failed"
        assert fields["output_summary"].startswith("Error after 0s: Invalid task descriptor")

    @pytest.mark.asyncio
    async def test_half_second_rounds_up(self, store, executor):
        executor.execute.side_effect = ExecutorError("intake unreachable")
        dispatcher = Dispatcher(
            status_updater=StatusUpdater(store),
            executor=executor,
            ledger=ExecutionLedger(store),
            clock=make_clock(100.0, 102.5),
        )

        await dispatcher.route_task(make_item())

        fields = store.create_execution.await_args.args[1]
        assert fields["output_summary"] == "Error after 3s: intake unreachable"
