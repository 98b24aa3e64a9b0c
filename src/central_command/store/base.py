"""Collaborator interfaces for the external record store.

The core reaches the store only through these two narrow protocols: a
filtered, ordered read plus partial update for the work queue, and an
append-only create for the ledger.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from central_command.models import WorkItem


@runtime_checkable
class QueueStore(Protocol):
    """Work queue backing store."""

    async def fetch_queued(self) -> list[WorkItem]:
        """Return every queued item, ascending by creation time.

        Raises:
            FetchError: If the read fails.
        """
        ...

    async def update_fields(self, record_id: str, fields: dict[str, Any]) -> None:
        """Partially update one item.

        Raises:
            SchemaFieldError: If a field name is not part of the store schema.
            RecordStoreError: For any other failure.
        """
        ...


@runtime_checkable
class LedgerStore(Protocol):
    """Append-only execution ledger."""

    async def create_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        """Create one execution record.

        Raises:
            LedgerWriteError: If the record could not be created.
        """
        ...
