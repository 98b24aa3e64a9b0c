"""HTTP executor that hands task descriptors to an intake endpoint."""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from central_command.config import ExecutorConfig
from central_command.errors import ExecutorError
from central_command.logging import get_logger
from central_command.models import ExecutorResult, TaskDescriptor

logger = get_logger(__name__)


class HttpExecutor:
    """POSTs each descriptor as JSON and parses the intake response."""

    def __init__(self, config: ExecutorConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(self, descriptor: TaskDescriptor) -> ExecutorResult:
        """Send one descriptor to the intake endpoint.

        Raises:
            ExecutorError: On transport errors, non-2xx responses or an
                unparseable response body.
        """
        client = await self._get_client()
        headers = {"Content-Type": "application/json"}
        if self.config.auth_header:
            headers["Authorization"] = self.config.auth_header

        try:
            response = await client.post(
                self.config.url,
                json=descriptor.model_dump(mode="json"),
                headers=headers,
            )
        except httpx.RequestError as e:
            raise ExecutorError(f"Executor request failed: {e}", task_id=descriptor.id) from e

        if not response.is_success:
            raise ExecutorError(
                f"Executor returned HTTP {response.status_code}: {response.text[:200]}",
                task_id=descriptor.id,
            )

        try:
            result = ExecutorResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ExecutorError(
                f"Unparseable executor response: {e}", task_id=descriptor.id
            ) from e

        self.logger.debug(
            "executor_responded",
            task_id=descriptor.id,
            status=result.status,
            status_code=response.status_code,
        )
        return result
