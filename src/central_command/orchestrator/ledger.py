"""Append-only execution ledger.

One ExecutionRecord is written per processing attempt, successful or not.
Ledger write failures are logged and swallowed here: they must never undo
a status transition the StatusUpdater has already committed.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass

import structlog

from central_command.errors import LedgerWriteError
from central_command.models import ExecutionRecord
from central_command.store.base import LedgerStore

logger = structlog.get_logger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class AttemptData:
    """Measurements of one processing attempt."""

    tokens_used: int = 0
    cost: float | None = None
    confidence: float = 0.0
    elapsed_seconds: float = 0.0
    summary: str = ""
    succeeded: bool = True


def generate_execution_id() -> str:
    """Return ``exec_<epoch ms>_<9 random base-36 chars>``.

    Unique within practical bounds; not cryptographically random.
    """
    suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=9))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


class ExecutionLedger:
    """Writes ExecutionRecords to a LedgerStore. Never updates or deletes."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store
        self.failed_writes = 0
        self.logger = logger.bind(component="ExecutionLedger")

    async def append(
        self,
        task_ref: str,
        agent_used: str,
        attempt: AttemptData,
    ) -> str | None:
        """Record one attempt.

        Args:
            task_ref: Record id of the originating work item.
            agent_used: Agent that processed the attempt.
            attempt: Attempt measurements.

        Returns:
            The new execution id, or None if the write failed.
        """
        record = ExecutionRecord(
            execution_id=generate_execution_id(),
            task_ref=task_ref,
            agent_used=agent_used,
            tokens_consumed=attempt.tokens_used,
            cost=attempt.cost,
            confidence=attempt.confidence,
            elapsed_seconds=attempt.elapsed_seconds,
            summary=attempt.summary,
            succeeded=attempt.succeeded,
        )

        try:
            await self.store.create_execution(record.execution_id, record.to_fields())
        except LedgerWriteError as e:
            self.failed_writes += 1
            self.logger.error(
                "ledger_write_failed",
                execution_id=record.execution_id,
                task_ref=task_ref,
                error=str(e),
            )
            return None

        self.logger.info(
            "execution_logged",
            execution_id=record.execution_id,
            task_ref=task_ref,
            agent=agent_used,
            succeeded=record.succeeded,
            cost=record.cost,
        )
        return record.execution_id
