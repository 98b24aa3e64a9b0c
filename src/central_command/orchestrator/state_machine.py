"""Work item status state machine for Central Command.

This module enforces the work item lifecycle and persists every transition
to the external record store. The store's schema is not under our control,
so writes are restricted to an allow-list of fields and, when the store
still rejects a field, retried once with the status alone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from central_command.errors import SchemaFieldError
from central_command.models import WorkItem, WorkItemStatus
from central_command.store.base import QueueStore

logger = structlog.get_logger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted.

    Attributes:
        current: The current work item status.
        target: The attempted target status.
        task_id: The ID of the work item that failed to transition.
    """

    def __init__(
        self,
        current: WorkItemStatus,
        target: WorkItemStatus,
        task_id: str | None = None,
    ):
        self.current = current
        self.target = target
        self.task_id = task_id
        msg = f"Invalid transition from {current.value} to {target.value}"
        if task_id:
            msg += f" for task {task_id}"
        super().__init__(msg)


# Authoritative state machine definition
VALID_TRANSITIONS: dict[WorkItemStatus, set[WorkItemStatus]] = {
    WorkItemStatus.queued: {WorkItemStatus.in_progress},
    WorkItemStatus.in_progress: {WorkItemStatus.done, WorkItemStatus.error},
    WorkItemStatus.done: set(),  # Terminal
    WorkItemStatus.error: set(),  # Terminal
}

# Fields written alongside the status. Anything else is dropped before the write.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "system_target",
        "assigned_agent",
        "started_at",
        "completed_at",
        "routed_at",
        "cost_actual",
        "last_error",
    }
)


def validate_transition(current: WorkItemStatus, target: WorkItemStatus) -> bool:
    """Validate if a state transition is allowed.

    Args:
        current: Current work item status.
        target: Target work item status.

    Returns:
        True if the transition is valid according to VALID_TRANSITIONS.
    """
    return target in VALID_TRANSITIONS.get(current, set())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class StatusUpdater:
    """Persists work item transitions with validation and side effects.

    This class handles:
    - Validation of state transitions (terminal states are final)
    - Stamping started_at/routed_at and completed_at
    - Filtering extra fields through UPDATABLE_FIELDS
    - Falling back to a status-only write on schema rejection
    - Mirroring the committed transition onto the in-process WorkItem
    """

    def __init__(
        self,
        store: QueueStore,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the status updater.

        Args:
            store: Work queue store receiving the writes.
            clock: Source of transition timestamps.
        """
        self.store = store
        self.clock = clock
        self.fallback_count = 0
        self.logger = logger.bind(component="StatusUpdater")

    async def transition(
        self,
        item: WorkItem,
        new_status: WorkItemStatus,
        extra_fields: dict[str, Any] | None = None,
    ) -> WorkItem:
        """Transition a work item to a new status.

        Args:
            item: The work item to transition. Updated in place on success
                with the status and the fields the store accepted. After a
                status-only fallback only the status and this transition's
                own timestamps are applied.
            new_status: Target status.
            extra_fields: Additional fields to persist. Keys outside
                UPDATABLE_FIELDS are dropped. Explicit values win over the
                automatic timestamps.

        Returns:
            The updated WorkItem.

        Raises:
            InvalidTransitionError: If the transition is not valid, including
                any transition out of a terminal state. Nothing is written.
            SchemaFieldError: If even the status-only write is rejected.
            RecordStoreError: If the store write fails for another reason.
        """
        current_status = item.status
        if not validate_transition(current_status, new_status):
            raise InvalidTransitionError(current_status, new_status, item.task_id)

        now = self.clock()
        stamps: dict[str, Any] = {}
        if new_status == WorkItemStatus.in_progress:
            stamps["started_at"] = now
            stamps["routed_at"] = now
        if new_status.is_terminal:
            stamps["completed_at"] = now
        fields = {**stamps, **(extra_fields or {})}

        accepted = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
        dropped = sorted(set(fields) - set(accepted))
        if dropped:
            self.logger.warning(
                "status_fields_dropped",
                task_id=item.task_id,
                fields=dropped,
            )

        payload = {"status": new_status.value}
        payload.update({key: _serialize(value) for key, value in accepted.items()})

        mirrored = accepted
        fallback = False
        try:
            await self.store.update_fields(item.record_id, payload)
        except SchemaFieldError as e:
            self.logger.warning(
                "status_fallback_to_status_only",
                task_id=item.task_id,
                to_status=new_status.value,
                field=e.field_name,
                error=str(e),
            )
            fallback = True
            self.fallback_count += 1
            await self.store.update_fields(item.record_id, {"status": new_status.value})
            mirrored = stamps

        item.status = new_status
        for key, value in mirrored.items():
            setattr(item, key, value)

        self.logger.info(
            "task_transition",
            task_id=item.task_id,
            from_status=current_status.value,
            to_status=new_status.value,
            status_only=fallback,
            started_at=item.started_at,
            completed_at=item.completed_at,
        )
        return item
