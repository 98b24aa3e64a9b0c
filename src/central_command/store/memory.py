"""In-process record store.

Implements QueueStore and LedgerStore over plain dicts. An optional set
of known field names mimics a fixed backing schema: updates naming any
other field are rejected with SchemaFieldError, like the hosted store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from central_command.errors import FetchError, LedgerWriteError, RecordStoreError, SchemaFieldError
from central_command.models import Priority, WorkItem, WorkItemStatus


class InMemoryRecordStore:
    """Dict-backed work queue and ledger.

    Attributes:
        records: Work queue records keyed by record id.
        executions: Ledger records in creation order.
        known_fields: Accepted update field names, or None to accept all.
        updates: Every accepted update as ``(record_id, fields)``, in order.
    """

    def __init__(self, known_fields: set[str] | None = None) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.executions: list[dict[str, Any]] = []
        self.known_fields = known_fields
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail_fetch = False
        self.fail_ledger = False
        self._counter = 0

    def submit(
        self,
        task_id: str,
        routing_payload: str | None = None,
        priority: Priority | str = Priority.P2,
        created_at: datetime | None = None,
        **fields: Any,
    ) -> str:
        """Add a queued record and return its record id."""
        self._counter += 1
        record_id = f"rec{self._counter:06d}"
        created = created_at or datetime.now(timezone.utc)
        self.records[record_id] = {
            "task_id": task_id,
            "routing_payload": routing_payload,
            "priority": Priority.parse(priority).value,
            "status": WorkItemStatus.queued.value,
            "created_date": created.isoformat(),
            **fields,
        }
        return record_id

    async def fetch_queued(self) -> list[WorkItem]:
        if self.fail_fetch:
            raise FetchError("In-memory fetch disabled")
        queued = [
            {"id": record_id, "fields": dict(fields)}
            for record_id, fields in self.records.items()
            if fields.get("status") == WorkItemStatus.queued.value
        ]
        queued.sort(key=lambda record: record["fields"]["created_date"])
        return [
            WorkItem.from_record(record, queued_status_value=WorkItemStatus.queued.value)
            for record in queued
        ]

    async def update_fields(self, record_id: str, fields: dict[str, Any]) -> None:
        if record_id not in self.records:
            raise RecordStoreError(f"Unknown record {record_id}", status_code=404)
        if self.known_fields is not None:
            for name in fields:
                if name not in self.known_fields:
                    raise SchemaFieldError(f'Unknown field name: "{name}"', field_name=name)
        self.records[record_id].update(fields)
        self.updates.append((record_id, dict(fields)))

    async def create_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        if self.fail_ledger:
            raise LedgerWriteError(f"In-memory ledger write {execution_id} disabled")
        self.executions.append(dict(fields))
