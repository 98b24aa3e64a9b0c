"""Airtable-backed record store for the work queue and the agents ledger."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote

import httpx

from central_command.config import StoreConfig
from central_command.errors import (
    FetchError,
    LedgerWriteError,
    RecordStoreError,
    SchemaFieldError,
)
from central_command.logging import get_logger
from central_command.models import WorkItem

logger = get_logger(__name__)

_FIELD_NAME_PATTERN = re.compile(r'"([^"]+)"')


class AirtableRecordStore:
    """REST client implementing both QueueStore and LedgerStore.

    Work queue reads use ``filterByFormula`` on the status field and sort by
    the configured creation field, following ``offset`` pagination until
    the table is exhausted. Updates are ``PATCH`` requests carrying only the
    given fields; a 422 response is reported as a SchemaFieldError.
    """

    def __init__(self, config: StoreConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/{self.config.base_id}"

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/{quote(table, safe='')}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                headers={
                    "Authorization": f"Bearer {self.config.api_token}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AirtableRecordStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def fetch_queued(self) -> list[WorkItem]:
        """Read every queued work item, oldest first.

        Returns:
            Queued WorkItems in ascending creation order.

        Raises:
            FetchError: On transport errors, non-2xx responses or a body that
                is not a JSON object. Individual records that do not parse are
                logged and skipped.
        """
        client = await self._get_client()
        url = self._table_url(self.config.work_queue_table)
        params: dict[str, Any] = {
            "filterByFormula": f'{{status}} = "{self.config.queued_status_value}"',
            "sort[0][field]": self.config.created_field,
            "sort[0][direction]": "asc",
            "pageSize": self.config.page_size,
        }

        records: list[dict[str, Any]] = []
        while True:
            try:
                response = await client.get(url, params=params)
            except httpx.RequestError as e:
                raise FetchError(f"Work queue read failed: {e}") from e

            if not response.is_success:
                raise FetchError(
                    f"Work queue read failed with HTTP {response.status_code}: "
                    f"{response.text[:200]}",
                    status_code=response.status_code,
                )

            try:
                body = response.json()
            except ValueError as e:
                raise FetchError(
                    f"Work queue read returned a non-JSON body: {response.text[:200]}",
                    status_code=response.status_code,
                ) from e
            if not isinstance(body, dict):
                raise FetchError(
                    f"Work queue read returned {type(body).__name__}, expected an object",
                    status_code=response.status_code,
                )
            records.extend(body.get("records", []))
            offset = body.get("offset")
            if not offset:
                break
            params["offset"] = offset

        items: list[WorkItem] = []
        for record in records:
            try:
                items.append(
                    WorkItem.from_record(
                        record,
                        queued_status_value=self.config.queued_status_value,
                        created_field=self.config.created_field,
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    "work_queue_record_skipped",
                    record_id=record.get("id") if isinstance(record, dict) else None,
                    error=str(e),
                )

        self.logger.debug(
            "work_queue_fetched",
            count=len(items),
            skipped=len(records) - len(items),
        )
        return items

    async def update_fields(self, record_id: str, fields: dict[str, Any]) -> None:
        """PATCH the given fields onto one work queue record.

        Raises:
            SchemaFieldError: If the store answers 422 (unknown field or value).
            RecordStoreError: On any other failure.
        """
        client = await self._get_client()
        url = f"{self._table_url(self.config.work_queue_table)}/{record_id}"
        try:
            response = await client.patch(url, json={"fields": fields})
        except httpx.RequestError as e:
            raise RecordStoreError(f"Update of {record_id} failed: {e}") from e

        if response.status_code == 422:
            message, field_name = _parse_field_error(response)
            raise SchemaFieldError(
                f"Update of {record_id} rejected: {message}",
                field_name=field_name,
            )
        if not response.is_success:
            raise RecordStoreError(
                f"Update of {record_id} failed with HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )

    async def create_execution(self, execution_id: str, fields: dict[str, Any]) -> None:
        """Create one ledger record.

        Raises:
            LedgerWriteError: On transport errors or non-2xx responses.
        """
        client = await self._get_client()
        url = self._table_url(self.config.ledger_table)
        try:
            response = await client.post(url, json={"fields": fields})
        except httpx.RequestError as e:
            raise LedgerWriteError(f"Ledger write {execution_id} failed: {e}") from e

        if not response.is_success:
            raise LedgerWriteError(
                f"Ledger write {execution_id} failed with HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )


def _parse_field_error(response: httpx.Response) -> tuple[str, str | None]:
    """Extract the error message and rejected field name from a 422 body."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return response.text[:200], None

    if isinstance(error, str):
        return error, None

    message = str(error.get("message") or error.get("type") or "unprocessable entity")
    match = _FIELD_NAME_PATTERN.search(message)
    return message, match.group(1) if match else None
