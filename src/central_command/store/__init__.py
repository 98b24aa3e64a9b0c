"""Record store collaborators."""

from __future__ import annotations

from central_command.store.airtable import AirtableRecordStore
from central_command.store.base import LedgerStore, QueueStore
from central_command.store.memory import InMemoryRecordStore

__all__ = [
    "AirtableRecordStore",
    "InMemoryRecordStore",
    "LedgerStore",
    "QueueStore",
]
