"""Per-item dispatch for the Central Command orchestrator.

The Dispatcher takes one claimed WorkItem through a full processing
attempt:

1. Resolve the agent and system target, classifying the item if either is missing.
2. Transition the item to ``in_progress``.
3. Parse the routing payload (malformed payloads degrade to ``{}``).
4. Build the normalized TaskDescriptor.
5. Invoke the executor under a timeout and time the call.
6. On success, price the attempt, transition to ``done`` and log a success record.
7. On failure, transition to ``error`` and log a failure record.

There is no automatic retry: a failed item stays in ``error`` until it is
resubmitted to the queue.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

import structlog

from central_command.errors import ExecutorError, PayloadParseError, RecordStoreError
from central_command.executor.base import Executor
from central_command.models import (
    ExecutorResult,
    Priority,
    TaskDescriptor,
    WorkItem,
    WorkItemStatus,
)
from central_command.orchestrator.classifier import (
    DEFAULT_POLICY,
    RoutingPolicy,
    analyze_task,
    classification_text,
)
from central_command.orchestrator.cost_model import (
    DEFAULT_RATES,
    CostRates,
    calculate_cost,
    estimate_token_usage,
    whole_seconds,
)
from central_command.orchestrator.ledger import AttemptData, ExecutionLedger
from central_command.orchestrator.state_machine import StatusUpdater

logger = structlog.get_logger(__name__)

DEFAULT_DELIVERABLES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "claude": ("architecture_doc", "implementation_plan"),
        "gpt4": ("content", "analysis"),
        "copilot": ("code", "documentation"),
        "multi_agent": ("comprehensive_report",),
    }
)
FALLBACK_DELIVERABLES: tuple[str, ...] = ("analysis",)

# Used for the ledger when the executor does not report a confidence.
DEFAULT_RESULT_CONFIDENCE = 0.85


@dataclass
class DispatchOutcome:
    """Result of one dispatch attempt.

    Attributes:
        record_id: Store key of the work item.
        task_id: Human-facing identifier.
        agent: Agent the item was routed to.
        system_target: System target the item was routed to.
        status: Status the item ended in.
        execution_id: Ledger id of the attempt, None if the ledger write failed.
        cost: Cost of a successful attempt.
        elapsed_seconds: Wall-clock executor time.
        error: Failure message for failed attempts.
    """

    record_id: str
    task_id: str
    agent: str
    system_target: str
    status: WorkItemStatus
    execution_id: str | None = None
    cost: float | None = None
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == WorkItemStatus.done


def default_deliverables(agent: str) -> list[str]:
    """Deliverables requested from ``agent`` when the payload names none."""
    return list(DEFAULT_DELIVERABLES.get(agent, FALLBACK_DELIVERABLES))


def parse_routing_payload(raw: str | None) -> dict[str, Any]:
    """Parse a routing payload into a dict.

    Args:
        raw: JSON text, or None/empty for no payload.

    Returns:
        The decoded object, or ``{}`` when there is no payload.

    Raises:
        PayloadParseError: If the text is not JSON or not a JSON object.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"Routing payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise PayloadParseError(
            f"Routing payload must be a JSON object, got {type(payload).__name__}"
        )
    return payload


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


_SCALARS = (str, int, float, bool)


def _as_text(value: Any) -> str | None:
    """Stringify a scalar payload value. Empty values and containers become None."""
    if value is None or value == "" or not isinstance(value, _SCALARS):
        return None
    return str(value)


def build_task_descriptor(
    item: WorkItem,
    payload: dict[str, Any],
    agent: str,
    system_target: str,
) -> TaskDescriptor:
    """Normalize a work item and its payload into a TaskDescriptor.

    The goal falls back to the task id and the deliverables to the agent's
    defaults. A payload priority (P0-P3) overrides the item priority.
    Scalar values are stringified where the descriptor expects text, so a
    numeric deadline or goal is accepted; a container deadline is dropped.
    """
    goal = (
        _as_text(payload.get("goal"))
        or _as_text(payload.get("description"))
        or _as_text(payload.get("task"))
        or item.task_id
    )

    raw_priority = payload.get("priority")
    if isinstance(raw_priority, str) and raw_priority.strip().upper() in Priority.__members__:
        priority = Priority.parse(raw_priority)
    else:
        priority = item.priority

    return TaskDescriptor(
        id=item.task_id,
        goal=goal,
        deliverables=[str(d) for d in _as_list(payload.get("deliverables"))]
        or default_deliverables(agent),
        priority=priority.label,
        constraints=_as_list(payload.get("constraints")),
        context=payload.get("context") or "",
        deadline=_as_text(payload.get("deadline")),
        system_target=system_target,
        assigned_agent=agent,
    )


class Dispatcher:
    """Drives a single WorkItem through one processing attempt.

    Attributes:
        status_updater: Persists lifecycle transitions.
        executor: Performs the agent work.
        ledger: Records the attempt.
        routing_policy: Classifier constants.
        cost_rates: Cost model rates.
        executor_timeout: Upper bound on the executor call, None for no bound.
    """

    def __init__(
        self,
        status_updater: StatusUpdater,
        executor: Executor,
        ledger: ExecutionLedger,
        routing_policy: RoutingPolicy = DEFAULT_POLICY,
        cost_rates: CostRates = DEFAULT_RATES,
        executor_timeout: float | None = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.status_updater = status_updater
        self.executor = executor
        self.ledger = ledger
        self.routing_policy = routing_policy
        self.cost_rates = cost_rates
        self.executor_timeout = executor_timeout
        self.clock = clock
        self._logger = logger.bind(component="Dispatcher")

    def resolve_assignment(self, item: WorkItem) -> tuple[str, str]:
        """Return ``(agent, system_target)``, classifying only missing values.

        Values already on the item are never replaced by the classifier.
        """
        if item.assigned_agent and item.system_target:
            return item.assigned_agent, item.system_target

        assignment = analyze_task(
            classification_text(item.task_id, item.routing_payload),
            self.routing_policy,
        )
        agent = item.assigned_agent or assignment.agent
        target = item.system_target or assignment.target

        self._logger.info(
            "work_item_auto_assigned",
            task_id=item.task_id,
            agent=agent,
            system_target=target,
            confidence=round(assignment.confidence, 3),
            override=assignment.override,
            reasoning=assignment.reasoning,
        )
        return agent, target

    def _load_payload(self, item: WorkItem) -> dict[str, Any]:
        try:
            return parse_routing_payload(item.routing_payload)
        except PayloadParseError as e:
            self._logger.warning(
                "routing_payload_invalid",
                task_id=item.task_id,
                error=str(e),
            )
            return {}

    async def route_task(self, item: WorkItem) -> DispatchOutcome:
        """Process one work item end to end.

        Args:
            item: A queued work item.

        Returns:
            The DispatchOutcome, with status ``done`` or ``error``.

        Raises:
            InvalidTransitionError: If the item is not queued.
            RecordStoreError: If the ``in_progress`` transition fails, or the
                ``error`` transition of a failed attempt fails. The failed
                attempt is still recorded in the ledger first.
        """
        agent, target = self.resolve_assignment(item)

        self._logger.info(
            "work_item_routing",
            task_id=item.task_id,
            agent=agent,
            system_target=target,
            priority=item.priority.value,
        )

        await self.status_updater.transition(
            item,
            WorkItemStatus.in_progress,
            {"system_target": target, "assigned_agent": agent},
        )

        try:
            payload = self._load_payload(item)
            descriptor = build_task_descriptor(item, payload, agent, target)
        except Exception as e:
            self._logger.error(
                "task_descriptor_error",
                task_id=item.task_id,
                error=str(e),
            )
            return await self._record_failure(
                item, agent, target, 0.0, f"Invalid task descriptor: {e}"
            )

        started = self.clock()
        try:
            result = await self._invoke_executor(descriptor)
        except ExecutorError as e:
            elapsed = self.clock() - started
            self._logger.error(
                "task_execution_error",
                task_id=item.task_id,
                elapsed_seconds=round(elapsed, 2),
                timed_out=e.timed_out,
                error=str(e),
            )
            return await self._record_failure(item, agent, target, elapsed, str(e))
        elapsed = self.clock() - started

        tokens_used = result.tokens_used
        if tokens_used is None:
            tokens_used = estimate_token_usage(descriptor.goal, agent)
        cost = calculate_cost(agent, whole_seconds(elapsed), tokens_used, self.cost_rates)

        try:
            await self.status_updater.transition(
                item,
                WorkItemStatus.done,
                {"cost_actual": cost},
            )
        except RecordStoreError as e:
            self._logger.error(
                "task_completion_update_error",
                task_id=item.task_id,
                error=str(e),
            )
            return await self._record_failure(
                item, agent, target, elapsed, f"Completion update failed: {e}"
            )

        execution_id = await self.ledger.append(
            item.record_id,
            agent,
            AttemptData(
                tokens_used=tokens_used,
                cost=cost,
                confidence=(
                    result.confidence
                    if result.confidence is not None
                    else DEFAULT_RESULT_CONFIDENCE
                ),
                elapsed_seconds=round(elapsed, 2),
                summary=result.summary or f"Task {item.task_id} completed via {target}",
                succeeded=True,
            ),
        )

        self._logger.info(
            "work_item_completed",
            task_id=item.task_id,
            agent=agent,
            elapsed_seconds=round(elapsed, 2),
            tokens_used=tokens_used,
            cost=cost,
        )
        return DispatchOutcome(
            record_id=item.record_id,
            task_id=item.task_id,
            agent=agent,
            system_target=target,
            status=WorkItemStatus.done,
            execution_id=execution_id,
            cost=cost,
            elapsed_seconds=elapsed,
        )

    async def _invoke_executor(self, descriptor: TaskDescriptor) -> ExecutorResult:
        """Call the executor, normalizing every failure to ExecutorError."""
        try:
            if self.executor_timeout is None:
                result = await self.executor.execute(descriptor)
            else:
                result = await asyncio.wait_for(
                    self.executor.execute(descriptor),
                    timeout=self.executor_timeout,
                )
        except asyncio.TimeoutError as e:
            raise ExecutorError(
                f"Executor timed out after {self.executor_timeout}s",
                task_id=descriptor.id,
                timed_out=True,
            ) from e
        except ExecutorError:
            raise
        except Exception as e:
            raise ExecutorError(str(e) or type(e).__name__, task_id=descriptor.id) from e

        if result.failed:
            raise ExecutorError(
                result.summary or f"Executor reported status {result.status}",
                task_id=descriptor.id,
            )
        return result

    async def _record_failure(
        self,
        item: WorkItem,
        agent: str,
        target: str,
        elapsed: float,
        message: str,
    ) -> DispatchOutcome:
        """Move the item to ``error`` and write exactly one failure record."""
        transition_error: RecordStoreError | None = None
        try:
            await self.status_updater.transition(
                item,
                WorkItemStatus.error,
                {"last_error": message},
            )
        except RecordStoreError as e:
            transition_error = e
            self._logger.error(
                "task_error_update_failed",
                task_id=item.task_id,
                error=str(e),
            )

        execution_id = await self.ledger.append(
            item.record_id,
            agent,
            AttemptData(
                elapsed_seconds=round(elapsed, 2),
                summary=f"Error after {whole_seconds(elapsed)}s: {message}",
                succeeded=False,
            ),
        )

        if transition_error is not None:
            raise transition_error

        return DispatchOutcome(
            record_id=item.record_id,
            task_id=item.task_id,
            agent=agent,
            system_target=target,
            status=WorkItemStatus.error,
            execution_id=execution_id,
            elapsed_seconds=elapsed,
            error=message,
        )
