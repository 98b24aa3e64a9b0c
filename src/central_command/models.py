"""Data models for Central Command.

Defines the WorkItem read from the work queue, its Priority and
WorkItemStatus enums, the normalized TaskDescriptor handed to the
executor, the ExecutorResult it returns, and the immutable
ExecutionRecord written to the ledger.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Priority(str, Enum):
    """Work item priority. P0 is the most urgent.

    The declaration order is the processing rank: P0 < P1 < P2 < P3.
    """

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def rank(self) -> int:
        """Sort rank, 0 for P0 through 3 for P3."""
        return _PRIORITY_RANKS[self]

    @property
    def label(self) -> str:
        """Executor-facing priority label (critical/high/medium/low)."""
        return _PRIORITY_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Priority:
        """Parse a stored priority, falling back to P2 for anything unrecognized.

        Args:
            value: Raw priority from the store (``"P0"``, ``"p1"``, None, ...).

        Returns:
            The matching Priority, or ``Priority.P2``.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.P2


_PRIORITY_RANKS = {Priority.P0: 0, Priority.P1: 1, Priority.P2: 2, Priority.P3: 3}
_PRIORITY_LABELS = {
    Priority.P0: "critical",
    Priority.P1: "high",
    Priority.P2: "medium",
    Priority.P3: "low",
}


class WorkItemStatus(str, Enum):
    """Lifecycle of a work item.

    States:
        queued: Submitted and waiting for the poller.
        in_progress: Claimed and handed to the executor.
        done: Executor finished successfully. Terminal.
        error: Executor or bookkeeping failed. Terminal.
    """

    queued = "queued"
    in_progress = "in_progress"
    done = "done"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are allowed from this state."""
        return self in (WorkItemStatus.done, WorkItemStatus.error)


class WorkItem(BaseModel):
    """A queued unit of work as seen by the poller.

    Attributes:
        record_id: Record store key, used for every update.
        task_id: Human-facing identifier, used for classification and as goal fallback.
        routing_payload: Optional JSON text with goal, deliverables and so on.
        priority: Processing priority.
        status: Current lifecycle state.
        assigned_agent: Agent that processes the item.
        system_target: System the agent works against.
        created_at: Submission time, used for fetch ordering.
        routed_at: When the item was routed to its agent.
        started_at: When the item entered in_progress.
        completed_at: When the item reached a terminal state.
        cost_actual: Cost of the successful attempt, rounded to cents.
        last_error: Human-readable failure message of the last attempt.
    """

    record_id: str
    task_id: str
    routing_payload: str | None = None
    priority: Priority = Priority.P2
    status: WorkItemStatus = WorkItemStatus.queued
    assigned_agent: str | None = None
    system_target: str | None = None
    created_at: datetime | None = None
    routed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cost_actual: float | None = None
    last_error: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v: Any) -> Priority:
        """Accept any stored priority value, defaulting to P2."""
        return Priority.parse(v)

    @classmethod
    def from_record(
        cls,
        record: dict[str, Any],
        queued_status_value: str = "new",
        created_field: str = "created_date",
    ) -> WorkItem:
        """Build a WorkItem from a raw work queue record.

        Args:
            record: Record with ``id``, optional ``createdTime`` and a ``fields`` mapping.
            queued_status_value: Store literal that means ``queued``.
            created_field: Field holding the submission time.

        Returns:
            The parsed WorkItem.
        """
        fields = record.get("fields") or {}
        raw_status = fields.get("status")
        if raw_status in (None, "", queued_status_value):
            status = WorkItemStatus.queued
        else:
            status = WorkItemStatus(raw_status)

        return cls(
            record_id=record["id"],
            task_id=str(fields.get("task_id") or record["id"]),
            routing_payload=fields.get("routing_payload") or None,
            priority=fields.get("priority"),
            status=status,
            assigned_agent=fields.get("assigned_agent") or None,
            system_target=fields.get("system_target") or None,
            created_at=fields.get(created_field) or record.get("createdTime") or None,
            routed_at=fields.get("routed_at") or None,
            started_at=fields.get("started_at") or None,
            completed_at=fields.get("completed_at") or None,
            cost_actual=fields.get("cost_actual"),
            last_error=fields.get("last_error") or None,
        )


class TaskDescriptor(BaseModel):
    """Normalized task handed to the executor."""

    id: str
    goal: str
    deliverables: list[str]
    priority: str
    constraints: list[Any] = Field(default_factory=list)
    context: Any = ""
    deadline: str | None = None
    system_target: str | None = None
    assigned_agent: str | None = None


class ExecutorResult(BaseModel):
    """Result reported by the executor for one task descriptor.

    Attributes:
        status: Executor-reported status (``completed`` unless told otherwise).
        confidence: Executor confidence in its output, if reported.
        tokens_used: Token usage, if reported. Accepts ``tokensUsed``.
        cost: Executor-side cost, if reported.
        summary: Human-readable summary of the work.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = "completed"
    confidence: float | None = None
    tokens_used: int | None = Field(default=None, alias="tokensUsed")
    cost: float | None = None
    summary: str | None = None

    @property
    def failed(self) -> bool:
        """Whether the executor reported a failure instead of raising."""
        return self.status.lower() in {"failed", "error"}


class ExecutionRecord(BaseModel):
    """Immutable audit entry for one processing attempt.

    Attributes:
        execution_id: Unique id of this attempt.
        task_ref: Record id of the originating WorkItem.
        agent_used: Agent that processed the attempt.
        tokens_consumed: Tokens consumed (0 for failed attempts).
        cost: Cost of the attempt, None when the attempt failed.
        confidence: Confidence score of the output.
        elapsed_seconds: Wall-clock duration of the attempt.
        summary: Human-readable summary.
        succeeded: Whether the attempt completed successfully.
        created_at: When the record was written.
    """

    model_config = ConfigDict(frozen=True)

    execution_id: str
    task_ref: str
    agent_used: str
    tokens_consumed: int = 0
    cost: float | None = None
    confidence: float = 0.0
    elapsed_seconds: float = 0.0
    summary: str = ""
    succeeded: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_fields(self) -> dict[str, Any]:
        """Serialize to the ledger table's field names."""
        return {
            "execution_id": self.execution_id,
            "task_link": [self.task_ref],
            "agent_used": self.agent_used,
            "tokens_consumed": self.tokens_consumed,
            "cost_usd": self.cost if self.cost is not None else 0,
            "confidence_score": self.confidence,
            "execution_time_seconds": self.elapsed_seconds,
            "output_summary": self.summary,
            "outcome": "success" if self.succeeded else "failed",
        }
