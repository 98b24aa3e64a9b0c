"""Exception types raised across Central Command.

Store failures share the ``RecordStoreError`` base so callers that only
care about "the store did not accept this" can catch one class, while the
poller and status updater still tell fetch, schema and ledger failures
apart.
"""

from __future__ import annotations


class RecordStoreError(Exception):
    """Raised when the external record store rejects or fails a request.

    Attributes:
        status_code: HTTP status returned by the store, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class FetchError(RecordStoreError):
    """Raised when the pending work queue read fails."""


class SchemaFieldError(RecordStoreError):
    """Raised when the store rejects a write naming an unrecognized field.

    Attributes:
        field_name: The rejected field, when the store reports it.
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        status_code: int | None = 422,
    ) -> None:
        self.field_name = field_name
        super().__init__(message, status_code=status_code)


class LedgerWriteError(RecordStoreError):
    """Raised when an execution record could not be created."""


class ExecutorError(Exception):
    """Raised when the executor fails to process a task descriptor.

    Attributes:
        task_id: Identifier of the task being processed.
        timed_out: Whether the failure was the dispatcher's timeout.
    """

    def __init__(self, message: str, task_id: str | None = None, timed_out: bool = False):
        self.task_id = task_id
        self.timed_out = timed_out
        super().__init__(message)


class PayloadParseError(ValueError):
    """Raised when a routing payload is not a JSON object."""
